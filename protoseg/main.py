"""
Main entry point for ProtoSeg
"""

import argparse
import copy
import os
import sys
import yaml
import logging
from typing import List, Optional

from protoseg.protoseg import ProtoSeg, setup_logging
from protoseg.utils.message_loader import MessageLoader
from protoseg.utils.report import build_json_report, render_text_report, save_json_report

DEFAULT_CONFIG = {
    'segmentation': {
        'sigma': 0.6,
        'accept_binary_payloads': True,
    },
    'corpus': {
        'enabled': True,
        'frequency_threshold': 0.1,
        'min_segment_length': 2,
    },
    'alignment': {
        'enabled': True,
        'threshold': 0.17,
        'gap_penalty': -1.0,
        'penalty_factor': 0.8,
    },
    'output': {
        'log_level': 'INFO',
        'show_hexdump': False,
    },
}


def merge_config(base: dict, override: dict) -> dict:
    """Recursively merge override into a copy of base"""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file on top of the built-in defaults"""
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(config_path, 'r') as f:
        user_config = yaml.safe_load(f) or {}
    if not isinstance(user_config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")
    return merge_config(DEFAULT_CONFIG, user_config)


def build_pipeline(config: dict) -> ProtoSeg:
    return ProtoSeg(
        sigma=config['segmentation']['sigma'],
        accept_binary_payloads=config['segmentation']['accept_binary_payloads'],
        frequency_threshold=config['corpus']['frequency_threshold'],
        min_segment_length=config['corpus']['min_segment_length'],
        alignment_threshold=config['alignment']['threshold'],
        gap_penalty=config['alignment']['gap_penalty'],
        penalty_factor=config['alignment']['penalty_factor']
    )


def run(args) -> int:
    # Load config
    config = load_config(args.config)

    # Setup logging
    log_level = getattr(logging, str(config['output']['log_level']).upper(), logging.INFO)
    setup_logging(level=log_level)

    logging.info("Starting ProtoSeg with configuration:")
    logging.info(yaml.dump(config, default_flow_style=False))

    protoseg = build_pipeline(config)

    # Load messages
    loader = MessageLoader()
    messages = loader.load_messages(args.input)
    if not messages:
        raise ValueError(f"No messages found in {args.input}")

    results = protoseg.run_full_pipeline(
        messages=messages,
        enable_corpus_refinement=config['corpus']['enabled'],
        enable_alignment=config['alignment']['enabled'] and not args.no_align
    )
    parsed = results['messages']
    alignments = results['alignments']

    # Imported here so that importing the package leaves the matplotlib backend alone
    from protoseg.utils.evaluator import ProtoSegEvaluator
    evaluator = ProtoSegEvaluator(output_dir=args.output)
    metrics = {
        'timing': {
            'segmentation': results['phase1'].get('time', 0.0),
            'corpus_refinement': results['phase2'].get('time', 0.0),
            'alignment': results['phase3'].get('time', 0.0),
            'total': results['total_time'],
        },
        'alignment': evaluator.summarize_alignment(alignments, len(parsed)),
    }

    if args.ground_truth:
        ground_truth = loader.load_ground_truth(args.ground_truth, messages)
        metrics['segmentation'] = evaluator.evaluate_segmentation_accuracy(
            [p.boundaries() for p in parsed], ground_truth
        )

    print(render_text_report(parsed, alignments,
                             further_decode=protoseg.further_decode,
                             show_hexdump=config['output']['show_hexdump']))

    report = build_json_report(parsed, alignments, protoseg.further_decode)
    save_json_report(os.path.join(args.output, 'report.json'), report)
    evaluator.save_metrics_json(metrics)
    evaluator.plot_boundary_distribution(parsed)

    logging.info("ProtoSeg completed successfully")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='ProtoSeg: Unsupervised binary protocol segmentation and alignment'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Run command
    run_parser = subparsers.add_parser('run', help='Run ProtoSeg pipeline')
    run_parser.add_argument('-c', '--config', default=None,
                            help='Configuration file (defaults are built in)')
    run_parser.add_argument('-i', '--input', required=True,
                            help='Hex messages file (one per line) or directory of *.bin files')
    run_parser.add_argument('-o', '--output', default='./protoseg_output',
                            help='Output directory')
    run_parser.add_argument('--ground-truth',
                            help='Ground truth boundaries file (one line per message)')
    run_parser.add_argument('--no-align', action='store_true',
                            help='Skip the alignment phase')

    # Example command
    subparsers.add_parser('example', help='Run example')

    args = parser.parse_args(argv)

    if args.command == 'example':
        from protoseg import example
        example.main()
        return 0

    elif args.command == 'run':
        try:
            return run(args)
        except (FileNotFoundError, ValueError) as e:
            logging.error(f"ProtoSeg failed: {e}")
            return 1

    parser.print_help()
    return 2


if __name__ == '__main__':
    sys.exit(main())
