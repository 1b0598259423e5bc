"""CLI entry point: python -m lnpredict"""

import argparse
import sys

from lnpredict.analysis.classification import VARIANTS
from lnpredict.config import StudyConfig
from lnpredict.io.readers import load_expression_dataset
from lnpredict.pipeline import prepare_dataset, run_study, write_report
from lnpredict.utils import get_logger

log = get_logger("lnpredict")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lnpredict",
        description=(
            "Lymph-node status prediction - moderated t gene ranking and "
            "cross-validated comparison of seven classifiers."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m lnpredict --expression expr.csv --metadata samples.csv\n"
            "  python -m lnpredict --expression expr.csv --metadata samples.csv "
            "--folds 6 --repeats 10 --top-n 50\n"
            "  python -m lnpredict --expression expr.csv --metadata samples.csv "
            "--variants random_forest svm --jobs 4\n"
        ),
    )
    parser.add_argument("--expression", help="genes x samples CSV, gene ids in the first column")
    parser.add_argument("--metadata", help="per-sample CSV, sample ids in the first column")
    parser.add_argument("--config", help="JSON file with study settings")
    parser.add_argument("--label-col", default="label", help="metadata label column (default: label)")
    parser.add_argument("--split-col", default="split", help="metadata split column (default: split)")
    parser.add_argument("--positive-label", default=None,
                        help="label value meaning node positive (default: 1)")
    parser.add_argument("--folds", type=int, default=None, help="folds per repeat (default: 6)")
    parser.add_argument("--repeats", type=int, default=None, help="cross-validation repeats (default: 10)")
    parser.add_argument("--top-n", type=int, default=None, help="genes selected per fold (default: 50)")
    parser.add_argument("--seed", type=int, default=None, help="random seed (default: 42)")
    parser.add_argument(
        "--variants",
        nargs="+",
        default=None,
        choices=list(VARIANTS.keys()),
        help="classifier variants to compare (default: all)",
    )
    parser.add_argument("--jobs", type=int, default=None, help="parallel workers (default: 1)")
    parser.add_argument("--strict-convergence", action="store_true", default=None,
                        help="count non-converged fits as failed cells")
    log2 = parser.add_mutually_exclusive_group()
    log2.add_argument("--log2", dest="log2", action="store_true", default=None,
                      help="always log2-transform intensities")
    log2.add_argument("--no-log2", dest="log2", action="store_false", default=None,
                      help="never log2-transform intensities")
    parser.add_argument("--output-dir", default="lnpredict_output",
                        help="directory for output files (default: lnpredict_output)")
    parser.add_argument("--no-plots", action="store_true", help="skip figures")
    parser.add_argument("--list-variants", action="store_true",
                        help="list classifier variants and exit")
    return parser


def _positive_label(value):
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return value


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_variants:
        print("Available classifier variants:")
        for name, variant in VARIANTS.items():
            print(f"  {name:<15} ({type(variant.factory(0)).__name__})")
        return 0

    if not args.expression or not args.metadata:
        parser.error("--expression and --metadata are required")

    try:
        config = StudyConfig.from_json(args.config) if args.config else StudyConfig()
        config = config.replace(
            n_splits=args.folds,
            n_repeats=args.repeats,
            top_n=args.top_n,
            seed=args.seed,
            variants=args.variants,
            n_jobs=args.jobs,
            strict_convergence=args.strict_convergence,
            positive_label=_positive_label(args.positive_label),
        )
        dataset = load_expression_dataset(
            args.expression,
            args.metadata,
            label_col=args.label_col,
            split_col=args.split_col,
            positive_label=config.positive_label,
        )
        dataset = prepare_dataset(dataset, log2=args.log2, test_size=config.test_size, seed=config.seed)
        result = run_study(dataset, config)
        write_report(result, dataset, args.output_dir, plots=not args.no_plots)
    except (OSError, ValueError) as exc:
        log.error("Study failed: %s", exc)
        return 1

    metrics = result.final.metrics
    print(f"\nBest variant: {result.best_variant}")
    print(result.cv_metrics.round(3).to_string())
    print(
        f"\nTest cohort: misclassification={metrics['misclassification']:.3f} "
        f"sensitivity={metrics['sensitivity']:.3f} "
        f"specificity={metrics['specificity']:.3f} auc={metrics['auc']:.3f}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
