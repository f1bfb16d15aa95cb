"""Smoke test that OpenAPI schema is valid and complete."""

import pytest


@pytest.mark.asyncio
async def test_openapi_spec_is_valid(openapi_spec):
    """OpenAPI schema should be valid JSON with required fields."""
    assert "openapi" in openapi_spec
    assert openapi_spec["openapi"].startswith("3.")
    assert "info" in openapi_spec
    assert "paths" in openapi_spec


@pytest.mark.asyncio
async def test_all_paths_have_operations(openapi_spec):
    """Every path should have at least one HTTP method."""
    for path, methods in openapi_spec["paths"].items():
        ops = [m for m in methods if m in ("get", "post", "put", "delete", "patch")]
        assert len(ops) > 0, f"Path {path} has no operations"


@pytest.mark.asyncio
async def test_operation_ids_unique(openapi_spec):
    """Operation ids double as client method names, so they must not collide."""
    seen = []
    for methods in openapi_spec["paths"].values():
        for method, details in methods.items():
            if method in ("get", "post", "put", "delete"):
                seen.append(details["operationId"])
    assert len(seen) == len(set(seen))


@pytest.mark.asyncio
async def test_error_responses_use_envelope(openapi_spec):
    """Documented 4xx responses on REST routes reference the error envelope."""
    for path, methods in openapi_spec["paths"].items():
        if not path.startswith("/api/"):
            continue
        for method, details in methods.items():
            for status, response in details.get("responses", {}).items():
                if status in ("401", "403", "404", "409"):
                    schema = response["content"]["application/json"]["schema"]
                    assert schema["$ref"].endswith("/ErrorResponse"), f"{method.upper()} {path} {status}"
