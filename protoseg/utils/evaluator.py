"""
Evaluation Metrics

Compares inferred segmentations with ground truth boundaries and summarizes
the alignment of a corpus.
"""

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from typing import Dict, Sequence
import logging
from dataclasses import dataclass, asdict
import json
import os

from protoseg.modules.segments import AlignedSegment, ParsedMessage


@dataclass
class SegmentationMetrics:
    """Metrics for field segmentation accuracy"""
    precision: float
    recall: float
    f1_score: float
    perfect_match_rate: float
    avg_boundary_error: float


@dataclass
class AlignmentSummary:
    """Summary of the pairwise alignment of a corpus"""
    pair_count: int
    aligned_count: int
    mean_dissimilarity: float


class ProtoSegEvaluator:
    """
    Evaluates segmentation and alignment results and stores them on disk.
    """

    def __init__(self, output_dir: str = './evaluation_results'):
        """
        Args:
            output_dir: Directory to save evaluation results
        """
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)

        logging.info(f"ProtoSegEvaluator initialized. Output: {output_dir}")

    def evaluate_segmentation_accuracy(self,
                                       predicted_boundaries: Sequence[Sequence[int]],
                                       ground_truth_boundaries: Sequence[Sequence[int]]) -> SegmentationMetrics:
        """
        Evaluate field boundary detection accuracy.

        Args:
            predicted_boundaries: Inferred boundary offsets for each message
            ground_truth_boundaries: True boundary offsets for each message

        Returns:
            Segmentation metrics
        """
        if len(predicted_boundaries) != len(ground_truth_boundaries):
            raise ValueError(f"Got boundaries for {len(predicted_boundaries)} messages "
                             f"but ground truth for {len(ground_truth_boundaries)}")

        total_tp = 0
        total_fp = 0
        total_fn = 0
        perfect_matches = 0
        total_boundary_errors = []

        for pred, gt in zip(predicted_boundaries, ground_truth_boundaries):
            pred_set = set(pred)
            gt_set = set(gt)

            total_tp += len(pred_set & gt_set)
            total_fp += len(pred_set - gt_set)
            total_fn += len(gt_set - pred_set)

            if pred_set == gt_set:
                perfect_matches += 1

            # Distance of every inferred boundary to the closest true one
            if gt_set:
                for p in pred_set:
                    total_boundary_errors.append(min(abs(p - g) for g in gt_set))

        precision = total_tp / (total_tp + total_fp) if (total_tp + total_fp) > 0 else 0.0
        recall = total_tp / (total_tp + total_fn) if (total_tp + total_fn) > 0 else 0.0
        f1 = 2 * precision * recall / (precision + recall) if (precision + recall) > 0 else 0.0
        perfect_rate = perfect_matches / len(predicted_boundaries) if predicted_boundaries else 0.0
        avg_error = float(np.mean(total_boundary_errors)) if total_boundary_errors else 0.0

        metrics = SegmentationMetrics(
            precision=precision,
            recall=recall,
            f1_score=f1,
            perfect_match_rate=perfect_rate,
            avg_boundary_error=avg_error
        )

        logging.info(f"Segmentation Metrics:")
        logging.info(f"  Precision: {precision:.4f}")
        logging.info(f"  Recall: {recall:.4f}")
        logging.info(f"  F1-Score: {f1:.4f}")
        logging.info(f"  Perfect Match Rate: {perfect_rate:.4f}")
        logging.info(f"  Avg Boundary Error: {avg_error:.2f} bytes")

        return metrics

    def summarize_alignment(self, alignments: Sequence[AlignedSegment], message_count: int) -> AlignmentSummary:
        pair_count = message_count * (message_count - 1) // 2
        mean = float(np.mean([a.dissimilarity for a in alignments])) if alignments else 0.0

        summary = AlignmentSummary(
            pair_count=pair_count,
            aligned_count=len(alignments),
            mean_dissimilarity=mean
        )
        logging.info(f"Alignment: {len(alignments)} aligned segments over {pair_count} message pairs "
                     f"(mean dissimilarity {mean:.4f})")
        return summary

    def plot_boundary_distribution(self,
                                   messages: Sequence[ParsedMessage],
                                   filename: str = 'boundary_distribution.png') -> str:
        """
        Plot how often every offset is a segment boundary across the corpus.

        Args:
            messages: Segmented messages
            filename: Output filename

        Returns:
            Path of the written image
        """
        offsets = [b for msg in messages for b in msg.boundaries() if b > 0]
        max_len = max((len(msg) for msg in messages), default=1)

        plt.figure(figsize=(10, 6))
        plt.hist(offsets, bins=np.arange(max_len + 2) - 0.5, color='blue', alpha=0.7)
        plt.xlabel('Byte Offset', fontsize=12)
        plt.ylabel('Boundary Count', fontsize=12)
        plt.title('Boundary Distribution Across Messages', fontsize=14, fontweight='bold')
        plt.grid(True, alpha=0.3, axis='y')
        plt.tight_layout()

        filepath = os.path.join(self.output_dir, filename)
        plt.savefig(filepath, dpi=150)
        plt.close()

        logging.info(f"Boundary distribution saved to {filepath}")
        return filepath

    def save_metrics_json(self, metrics: Dict, filename: str = 'metrics.json') -> str:
        """Save metrics to JSON file"""
        filepath = os.path.join(self.output_dir, filename)

        # Convert dataclass to dict
        def convert(obj):
            if hasattr(obj, '__dataclass_fields__'):
                return asdict(obj)
            if isinstance(obj, np.generic):
                return obj.item()
            return str(obj)

        with open(filepath, 'w') as f:
            json.dump(metrics, f, indent=2, default=convert)

        logging.info(f"Metrics saved to {filepath}")
        return filepath
