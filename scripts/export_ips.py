#!/usr/bin/env python3
"""
Export an International Patient Summary from the command line

Assembles the IPS document for a patient, optionally submits it to the
configured validator, and prints the JSON result.

Usage:
    python scripts/export_ips.py --patient 123 --practitioner 456
    python scripts/export_ips.py --patient 123 --fhir-user Practitioner/456 --no-validate
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path to import src modules
sys.path.append(str(Path(__file__).parent.parent))

from src.config import settings
from src.exceptions import MissingIdentityContext
from src.logging_config import configure_logging
from src.services.export_service import IPSExportService
from src.services.identity import LaunchContext


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Export an IPS document Bundle")
    parser.add_argument("--patient", required=True, help="Patient id in context")
    parser.add_argument("--practitioner", help="Author practitioner id")
    parser.add_argument("--fhir-user", help="fhirUser reference, e.g. Practitioner/456")
    parser.add_argument("--fhir-base-url", default=None, help="FHIR server base URL")
    parser.add_argument("--no-validate", action="store_true", help="Skip $validate submission")
    return parser.parse_args(argv)


async def export_ips(args) -> int:
    """Run one export; returns the process exit code"""
    context = LaunchContext(
        patient_id=args.patient,
        practitioner_id=args.practitioner,
        fhir_user=args.fhir_user,
        fhir_base_url=args.fhir_base_url
    )
    service = IPSExportService()

    try:
        if args.no_validate:
            document = await service.assemble(context)
            print(json.dumps(document.to_dict(), indent=2))
            return 0

        result = await service.export(context)
    except MissingIdentityContext as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    if not result.success:
        print(f"❌ Validation failed: {result.error}", file=sys.stderr)
        return 1

    print(json.dumps(result.to_response(), indent=2))
    return 0


if __name__ == "__main__":
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(export_ips(parse_args())))
