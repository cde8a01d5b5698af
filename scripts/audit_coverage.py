import argparse
import json
import sys
from pathlib import Path

from core.logging import get_logger
from core.persistence import (
    CALENDAR_FILE_NAME,
    RADAR_DAY_FILE_NAME,
    RADAR_WEEK_FILE_NAME,
    data_dir,
    load_json_object,
)
from radar.audit import audit_fixture_coverage

log = get_logger("scripts.audit_coverage")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Verifica che ogni highlight esista nel calendario.")
    parser.add_argument("--data-dir", default=None, help="Directory documenti (default: RADAR_DATA_DIR)")
    args = parser.parse_args(argv)

    base = Path(args.data_dir) if args.data_dir else data_dir()
    try:
        calendar = load_json_object(base / CALENDAR_FILE_NAME)
        day = load_json_object(base / RADAR_DAY_FILE_NAME)
        week = load_json_object(base / RADAR_WEEK_FILE_NAME)
    except ValueError as e:
        log.error("audit_input_invalid %s", e)
        return 2
    if calendar is None:
        log.error("audit_calendar_missing %s", base / CALENDAR_FILE_NAME)
        return 2

    report = audit_fixture_coverage(calendar, day, week)
    print(json.dumps(report, ensure_ascii=False, indent=2))
    if not report["ok"]:
        log.warning("audit_coverage_gaps", extra={"summary": report})
        return 1
    log.info("audit_coverage_ok", extra={"count": report["counts"]["calendar"]})
    return 0


if __name__ == "__main__":
    sys.exit(main())
