# occupancy_engine/cli/__main__.py
from __future__ import annotations

import argparse
import dataclasses
import json
from datetime import date

from ..db import SessionLocal, init_db
from ..domain.dates import as_date
from ..logging_config import configure_logging
from ..middleware.request_id import bind_sweep_id
from ..services.availability import RentalType, check_availability
from ..services.contract_lifecycle import run_contract_expiration_check
from ..services.notifications import DbNotifier


def _date_arg(v: str) -> date:
    d = as_date(v)
    if d is None:
        raise argparse.ArgumentTypeError(f"not an ISO date: {v!r}")
    return d


def _sweep() -> dict:
    db = SessionLocal()
    try:
        with bind_sweep_id() as sweep_id:
            passes = run_contract_expiration_check(db, DbNotifier(db))
        return {"ok": True, "sweep_id": sweep_id, "passes": [p.as_dict() for p in passes]}
    finally:
        db.close()


def _check(property_id: int, start: date, end: date, rental_type: str) -> dict:
    db = SessionLocal()
    try:
        res = check_availability(db, property_id, start, end, RentalType(rental_type))
        return dataclasses.asdict(res)
    finally:
        db.close()


def main() -> None:
    p = argparse.ArgumentParser(prog="occupancy_engine.cli")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="create tables from the models")
    sub.add_parser("sweep", help="run one contract expiration sweep now")

    c = sub.add_parser("check", help="check availability for a property")
    c.add_argument("--property-id", type=int, required=True)
    c.add_argument("--start", type=_date_arg, required=True)
    c.add_argument("--end", type=_date_arg, required=True)
    c.add_argument("--rental-type", default="daily", choices=[t.value for t in RentalType])

    args = p.parse_args()
    configure_logging()

    if args.cmd == "init-db":
        init_db()
        out = {"ok": True}
    elif args.cmd == "sweep":
        out = _sweep()
    else:
        out = _check(args.property_id, args.start, args.end, args.rental_type)

    print(json.dumps(out, default=str))


if __name__ == "__main__":
    main()
