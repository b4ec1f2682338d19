"""Contract commands: local checks plus server-side validation and live tests."""

from __future__ import annotations

import json

from pydantic import ValidationError

from koor_cli.cli.exit_codes import EXIT_FAILURE, EXIT_SUCCESS
from koor_cli.cli.output import render_body
from koor_cli.cli.routes import BODY_USAGE, parse_json_body, read_body
from koor_cli.client import KoorClient
from koor_cli.descriptors import compact_json, json_object
from koor_cli.errors import KoorCLIError, TransportError, UsageError
from koor_cli.schemas import ContractDocument, ContractTestResult, ContractValidation

CONTRACT_KIND = "contract"


def run_contract_set(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    usage = f"koor-cli contract set <project>/<name> {BODY_USAGE}"
    body = read_body(args, usage=usage)
    document = parse_json_body(body, what="contract", usage=usage)
    if not isinstance(document, dict) or document.get("kind") != CONTRACT_KIND:
        raise UsageError(
            f'contract must be a JSON object with "kind": "{CONTRACT_KIND}"', usage=usage
        )

    resource = args.resource
    response = client.request("PUT", f"/api/specs/{resource.project}/{resource.name}", body)
    render_body(response.body, pretty=pretty, stdout=stdout)
    return EXIT_SUCCESS


def run_contract_get(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    resource = args.resource
    response = client.get_spec(resource.project, resource.name)
    render_body(response.body, pretty=True, stdout=stdout)
    return EXIT_SUCCESS


def _validation_payload(args) -> str:
    usage = (
        "koor-cli contract validate <project>/<name> --endpoint <endpoint> "
        "[--direction request|response] [--payload <json> | --file <path>]"
    )
    if args.payload is not None and args.file is not None:
        raise UsageError("use either --payload or --file, not both", usage=usage)
    if args.payload is not None:
        raw = args.payload.encode("utf-8")
    elif args.file is not None:
        with open(args.file, "rb") as handle:
            raw = handle.read()
    else:
        return "{}"
    payload = parse_json_body(raw, what="payload", usage=usage)
    if not isinstance(payload, dict):
        raise UsageError("payload must be a JSON object", usage=usage)
    return raw.decode("utf-8")


def _print_violation_lines(stdout, violations, *, tag: str = "") -> None:
    prefix = f"[{tag}] " if tag else ""
    for violation in violations:
        print(f"  - {prefix}[{violation.path}] {violation.message}", file=stdout)


def run_contract_validate(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    payload = _validation_payload(args)
    body = json_object(
        [
            ("endpoint", json.dumps(args.endpoint)),
            ("direction", json.dumps(args.direction)),
            ("payload", payload),
        ]
    )
    resource = args.resource
    response = client.validate_contract(resource.project, resource.name, body)
    try:
        result = ContractValidation.model_validate_json(response.body)
    except ValidationError:
        print(
            f"error: unexpected validate response (status {response.status_code}): "
            f"{response.text.strip()}",
            file=stderr,
        )
        return EXIT_FAILURE

    label = f"{args.direction} {args.endpoint}"
    if result.valid:
        print(f"PASS  {label}", file=stdout)
        return EXIT_SUCCESS
    print(f"FAIL  {label}", file=stdout)
    _print_violation_lines(stdout, result.violations)
    return EXIT_FAILURE


def _load_endpoints(client: KoorClient, project: str, name: str) -> list[str]:
    response = client.get_spec(project, name)
    try:
        document = ContractDocument.model_validate_json(response.body)
    except ValidationError as exc:
        raise KoorCLIError(
            f"{project}/{name} is not a contract with endpoints "
            f"(status {response.status_code}): {response.text.strip()}"
        ) from exc
    return list(document.endpoints)


def _test_endpoint(
    client: KoorClient,
    project: str,
    name: str,
    *,
    endpoint: str,
    base_url: str,
) -> ContractTestResult:
    body = compact_json({"endpoint": endpoint, "base_url": base_url})
    try:
        response = client.test_contract(project, name, body)
    except TransportError as exc:
        return ContractTestResult(valid=False, endpoint=endpoint, error=str(exc))
    try:
        return ContractTestResult.model_validate_json(response.body)
    except ValidationError:
        return ContractTestResult(
            valid=False,
            endpoint=endpoint,
            status_code=0,
            error=f"unexpected test response (status {response.status_code}): "
            f"{response.text.strip()}",
        )


def run_contract_test(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    resource = args.resource
    endpoints = _load_endpoints(client, resource.project, resource.name)

    passed = 0
    failed = 0
    for endpoint in endpoints:
        result = _test_endpoint(
            client,
            resource.project,
            resource.name,
            endpoint=endpoint,
            base_url=args.target,
        )
        if result.valid:
            passed += 1
            print(f"PASS  {endpoint} (status: {result.status_code})", file=stdout)
            continue
        failed += 1
        print(f"FAIL  {endpoint} (status: {result.status_code})", file=stdout)
        _print_violation_lines(stdout, result.request_violations, tag="req")
        _print_violation_lines(stdout, result.response_violations, tag="resp")
        if result.error:
            print(f"  - error: {result.error}", file=stdout)

    summary = f"{passed}/{len(endpoints)} endpoints PASS"
    if failed:
        summary += f", {failed} FAIL"
    print(summary, file=stdout)
    return EXIT_FAILURE if failed else EXIT_SUCCESS


__all__ = [
    "run_contract_get",
    "run_contract_set",
    "run_contract_test",
    "run_contract_validate",
]
