"""
Command line entry point.

Usage:
    cqf-tooling ConvertR5toR4 -ptd=path/to/r5/resources -e=json -bt=transaction
    cqf-tooling PackageMeasures --ig-root path/to/ig --include-dependencies
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from cqf_tooling.exceptions import ToolingError
from cqf_tooling.fhir.versions import FhirVersion
from cqf_tooling.operation.convert_r5_to_r4 import OPERATION_NAME, ConvertR5toR4
from cqf_tooling.packaging import (
    MeasurePackagingOptions,
    PackageMeasures,
    PackagingStatus,
    PathResolutionPolicy,
)
from cqf_tooling.settings import settings

PACKAGE_MEASURES = "PackageMeasures"


def _fhir_version(value: str) -> FhirVersion:
    try:
        return FhirVersion.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cqf-tooling",
        description="FHIR knowledge artifact tooling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Convert a directory of R5 resources to an R4 transaction bundle
    cqf-tooling ConvertR5toR4 -ptd=input/r5 -op=output -e=json -bt=transaction

    # Package every Measure of an IG with its libraries and terminology
    cqf-tooling PackageMeasures --ig-root my-ig --include-dependencies \\
        --include-terminology

    # Package the Measures under one directory only
    cqf-tooling PackageMeasures --ig-root my-ig \\
        --measure my-ig/input/resources/measure/cms
        """,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="operation", required=True)

    # -flag=value tokens are left unparsed and forwarded to the operation
    subparsers.add_parser(
        OPERATION_NAME,
        help="Convert a directory of FHIR R5 resources to a FHIR R4 bundle",
        description="-pathtodir|-ptd=<dir> [-outputpath|-op=<dir>] "
        "[-encoding|-e=json|xml] [-bundletype|-bt=collection|transaction] "
        "[-bundleid|-bid=<id>] [-outputfilename|-ofn=<name>]",
    )

    package = subparsers.add_parser(
        PACKAGE_MEASURES,
        help="Package the Measures of an Implementation Guide into bundles",
    )
    package.add_argument(
        "--ig-root",
        type=Path,
        required=True,
        help="Implementation Guide root directory",
    )
    package.add_argument(
        "--fhir-version",
        type=_fhir_version,
        default=FhirVersion.R4,
        help="FHIR version of the IG (default: R4)",
    )
    package.add_argument(
        "--measure",
        dest="measure_to_package_path",
        type=Path,
        help="Only package Measures at this file or under this directory",
    )
    package.add_argument(
        "--include-dependencies",
        action="store_true",
        help="Include Library dependencies",
    )
    package.add_argument(
        "--include-terminology",
        action="store_true",
        help="Include referenced ValueSets",
    )
    package.add_argument(
        "--include-tests",
        action="store_true",
        help="Include test case resources",
    )
    package.add_argument(
        "--fhir-server-url",
        help="FHIR server to fetch ValueSets missing from the IG",
    )
    package.add_argument(
        "--strict-paths",
        action="store_true",
        help="Fail instead of packaging everything when --measure cannot be resolved",
    )

    return parser


def _run_package_measures(args: argparse.Namespace) -> int:
    options = MeasurePackagingOptions(
        ig_root=args.ig_root,
        fhir_version=args.fhir_version,
        measure_to_package_path=args.measure_to_package_path,
        include_dependencies=args.include_dependencies,
        include_terminology=args.include_terminology,
        include_tests=args.include_tests,
        fhir_server_url=args.fhir_server_url,
    )
    policy = (
        PathResolutionPolicy.STRICT
        if args.strict_paths
        else PathResolutionPolicy.FAIL_OPEN
    )
    result = PackageMeasures(options, on_resolve_error=policy).run()

    if result.status is PackagingStatus.NO_MATCH:
        print("No Measures packaged")
        return 0

    for package in result.packages:
        print(
            f"{package.measure_name}: {package.resource_count} resources -> "
            f"{package.output_path}"
        )
    return 0


def _run_convert(flags: list[str]) -> int:
    result = ConvertR5toR4().execute(flags)
    if result.produced_output:
        print(f"Wrote {result.entry_count} entries to {result.output_path}")
    else:
        print("No bundle written", file=sys.stderr)
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args, extras = parser.parse_known_args(argv)
    if extras and args.operation != OPERATION_NAME:
        parser.error(f"unrecognized arguments: {' '.join(extras)}")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.operation == OPERATION_NAME:
            exit_code = _run_convert(extras)
        else:
            exit_code = _run_package_measures(args)
    except ToolingError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
