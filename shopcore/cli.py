import argparse
import json
import sys
import logging

from shopcore.services.jobs import JOB_NAMES, run_job

# 로그 설정
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("shopcore.cli")


def run_job_command(args) -> int:
    """잡 실행기"""
    try:
        logger.info(f"[CLI] Starting job {args.job}")
        result = run_job(args.job, trigger="cli")
        print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
        return 0 if result.get("status") == "success" else 2
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        return 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="shopcore Operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    job_parser = subparsers.add_parser("run-job", help="Run sweep / recompute jobs")
    job_parser.add_argument("--job", choices=JOB_NAMES, required=True)

    args = parser.parse_args(argv)

    if args.command == "run-job":
        return run_job_command(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
