"""Table-driven (resource, operation) execution for the CPQ API.

Goal
- Keep the endpoint catalogue as static data (`OPERATIONS`), not branching.
- Dispatch on a closed set of operation kinds through a handler registry;
  every kind must have a handler before anything runs.

This module intentionally avoids FastAPI types/exceptions.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Literal
from urllib.parse import quote

from pydantic import BaseModel, Field

from cpq_connector.integrations.cpq_client import MAX_PAGE_SIZE, CPQClient, clamp_page_size
from cpq_connector.integrations.cpq_errors import CPQError, CPQInputError, CPQUnknownOperationError
from cpq_connector.integrations.cpq_payloads import (
    compile_conditions,
    join_include_fields,
    parse_json_field,
    parse_patch_operations,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Resource(str, Enum):
    QUOTES = "quotes"
    QUOTE_ITEMS = "quoteItems"
    QUOTE_CUSTOMERS = "quoteCustomers"
    QUOTE_TABS = "quoteTabs"
    QUOTE_TERMS = "quoteTerms"
    RECURRING_REVENUE = "recurringRevenue"
    TAX_CODES = "taxCodes"
    TEMPLATES = "templates"
    USER = "user"


class Operation(str, Enum):
    GET = "get"
    GET_ALL = "getAll"
    GET_ITEMS = "getItems"
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    COPY = "copy"


class OperationKind(str, Enum):
    fetch_one = "fetch_one"
    list_paged = "list_paged"
    list_unpaged = "list_unpaged"
    send_json = "send_json"
    patch = "patch"
    delete = "delete"
    action = "action"


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OperationSpec:
    resource: Resource
    operation: Operation
    kind: OperationKind
    method: str
    path: str
    description: str = ""
    body_field: str | None = None
    # None means the endpoint does not take showAllVersions at all.
    show_all_versions_default: bool | None = None

    @property
    def path_params(self) -> list[str]:
        return [name for _, name, _, _ in string.Formatter().parse(self.path) if name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource.value,
            "operation": self.operation.value,
            "kind": self.kind.value,
            "method": self.method,
            "path": self.path,
            "path_params": self.path_params,
            "paged": self.kind is OperationKind.list_paged,
            "description": self.description,
        }


_QUOTE = "/api/quotes/{quote_id}"
_QUOTE_ITEM = "/api/quoteItems/{id}"
_QUOTE_CUSTOMER = "/api/quotes/{quote_id}/customers/{id}"
_QUOTE_TERM = "/api/quotes/{quote_id}/quoteTerms/{id}"
_USER = "/settings/user/{user_id}"

R, O, K = Resource, Operation, OperationKind

OPERATIONS: tuple[OperationSpec, ...] = (
    OperationSpec(R.QUOTES, O.GET, K.fetch_one, "GET", _QUOTE, "Get a quote by ID"),
    OperationSpec(R.QUOTES, O.GET_ALL, K.list_paged, "GET", "/api/quotes", "List quotes", show_all_versions_default=False),
    OperationSpec(R.QUOTES, O.DELETE, K.delete, "DELETE", _QUOTE, "Delete a quote by ID"),
    OperationSpec(R.QUOTES, O.COPY, K.action, "POST", "/api/quotes/copyById/{quote_id}", "Copy a quote/template by ID"),
    OperationSpec(R.QUOTE_ITEMS, O.CREATE, K.send_json, "POST", "/api/quoteItems", "Create quote item", body_field="body_json"),
    OperationSpec(R.QUOTE_ITEMS, O.GET, K.fetch_one, "GET", _QUOTE_ITEM, "Get quote item by ID"),
    OperationSpec(R.QUOTE_ITEMS, O.GET_ALL, K.list_paged, "GET", "/api/quoteItems", "List quote items", show_all_versions_default=False),
    OperationSpec(R.QUOTE_ITEMS, O.DELETE, K.delete, "DELETE", _QUOTE_ITEM, "Delete quote item"),
    OperationSpec(R.QUOTE_ITEMS, O.UPDATE, K.patch, "PATCH", _QUOTE_ITEM, "Update quote item (PATCH)"),
    OperationSpec(R.QUOTE_CUSTOMERS, O.GET_ALL, K.list_unpaged, "GET", "/api/quotes/{quote_id}/customers", "List quote customers for a quote"),
    OperationSpec(R.QUOTE_CUSTOMERS, O.GET, K.fetch_one, "GET", _QUOTE_CUSTOMER, "Get quote customer"),
    OperationSpec(R.QUOTE_CUSTOMERS, O.UPDATE, K.patch, "PATCH", _QUOTE_CUSTOMER, "Update quote customer (PATCH)"),
    OperationSpec(R.QUOTE_CUSTOMERS, O.REPLACE, K.send_json, "PUT", _QUOTE_CUSTOMER, "Replace quote customer (PUT)", body_field="customer_json"),
    OperationSpec(R.QUOTE_CUSTOMERS, O.DELETE, K.delete, "DELETE", _QUOTE_CUSTOMER, "Delete quote customer"),
    OperationSpec(R.QUOTE_TABS, O.GET_ALL, K.list_paged, "GET", "/api/quoteTabs", "List quote tabs", show_all_versions_default=True),
    OperationSpec(R.QUOTE_TABS, O.GET_ITEMS, K.list_unpaged, "GET", "/api/quoteTabs/{id}/quoteItems", "Get items by tab ID"),
    OperationSpec(R.QUOTE_TERMS, O.GET_ALL, K.list_paged, "GET", "/api/quotes/{quote_id}/quoteTerms", "List quote terms"),
    OperationSpec(R.QUOTE_TERMS, O.GET, K.fetch_one, "GET", _QUOTE_TERM, "Get quote term"),
    OperationSpec(R.QUOTE_TERMS, O.CREATE, K.send_json, "POST", "/api/quotes/{quote_id}/quoteTerms", "Create quote term", body_field="term_json"),
    OperationSpec(R.QUOTE_TERMS, O.UPDATE, K.patch, "PATCH", _QUOTE_TERM, "Update quote term (PATCH)"),
    OperationSpec(R.QUOTE_TERMS, O.DELETE, K.delete, "DELETE", _QUOTE_TERM, "Delete quote term"),
    OperationSpec(R.RECURRING_REVENUE, O.GET_ALL, K.list_paged, "GET", "/api/recurringRevenues", "List recurring revenues"),
    OperationSpec(R.TAX_CODES, O.GET_ALL, K.list_paged, "GET", "/api/taxCodes", "List tax codes"),
    OperationSpec(R.TEMPLATES, O.GET_ALL, K.list_unpaged, "GET", "/api/templates", "List templates"),
    OperationSpec(R.USER, O.GET_ALL, K.list_paged, "GET", "/settings/user", "List users"),
    OperationSpec(R.USER, O.GET, K.fetch_one, "GET", _USER, "Get user"),
    OperationSpec(R.USER, O.UPDATE, K.patch, "PATCH", _USER, "Update user (PATCH)"),
)

OPERATION_TABLE: dict[tuple[Resource, Operation], OperationSpec] = {
    (spec.resource, spec.operation): spec for spec in OPERATIONS
}


def get_operation_spec(resource: str | Resource, operation: str | Operation) -> OperationSpec:
    try:
        key = (Resource(resource), Operation(operation))
    except ValueError as e:
        raise CPQUnknownOperationError(f"Unknown resource/operation: {resource}/{operation}") from e

    spec = OPERATION_TABLE.get(key)
    if spec is None:
        raise CPQUnknownOperationError(
            f"Operation {key[1].value!r} is not available for resource {key[0].value!r}"
        )
    return spec


def list_operations() -> list[dict[str, Any]]:
    return [spec.to_dict() for spec in OPERATIONS]


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


class OperationParams(BaseModel):
    """Per-item parameters for one operation call.

    Only the fields an operation uses are read; the rest are ignored.
    """

    quote_id: str | int | None = None
    id: str | int | None = None
    user_id: str | int | None = None

    body_json: Any = None
    customer_json: Any = None
    term_json: Any = None
    patch_operations: Any = None

    return_all: bool = False
    limit: int = Field(default=100, ge=1)
    page_size: int | None = Field(default=None, ge=1)

    conditions: str | None = None
    conditions_ui: list[dict[str, Any]] = Field(default_factory=list)
    conditions_logic: Literal["and", "or"] = "and"
    include_fields: str | list[str] | None = None
    show_all_versions: bool | None = None


def render_path(spec: OperationSpec, params: OperationParams) -> str:
    values: dict[str, str] = {}
    for name in spec.path_params:
        raw = getattr(params, name, None)
        text = "" if raw is None else str(raw).strip()
        if not text:
            raise CPQInputError(
                f"{name} is required for {spec.resource.value}/{spec.operation.value}"
            )
        values[name] = quote(text, safe="")
    return spec.path.format(**values)


def build_list_query(spec: OperationSpec, params: OperationParams) -> dict[str, Any]:
    qs: dict[str, Any] = {}

    conditions = compile_conditions(
        params.conditions, params.conditions_ui, params.conditions_logic
    )
    if conditions:
        qs["conditions"] = conditions

    include_fields = join_include_fields(params.include_fields)
    if include_fields:
        qs["includeFields"] = include_fields

    if spec.show_all_versions_default is not None:
        qs["showAllVersions"] = (
            params.show_all_versions
            if params.show_all_versions is not None
            else spec.show_all_versions_default
        )
    return qs


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


OperationHandler = Callable[[CPQClient, OperationSpec, OperationParams], list[Any]]


class OperationRegistry:
    def __init__(self) -> None:
        self._handlers: dict[OperationKind, OperationHandler] = {}

    def register(self, kind: OperationKind) -> Callable[[OperationHandler], OperationHandler]:
        def _decorator(fn: OperationHandler) -> OperationHandler:
            self._handlers[kind] = fn
            return fn

        return _decorator

    def get(self, kind: OperationKind) -> OperationHandler | None:
        return self._handlers.get(kind)

    def implemented_kinds(self) -> set[OperationKind]:
        return set(self._handlers.keys())

    def missing_kinds(self) -> set[OperationKind]:
        return set(OperationKind) - self.implemented_kinds()


def _default_registry() -> OperationRegistry:
    reg = OperationRegistry()

    @reg.register(OperationKind.fetch_one)
    def _fetch_one(client: CPQClient, spec: OperationSpec, params: OperationParams) -> list[Any]:
        return [client.execute(spec.method, render_path(spec, params))]

    @reg.register(OperationKind.list_paged)
    def _list_paged(client: CPQClient, spec: OperationSpec, params: OperationParams) -> list[Any]:
        path = render_path(spec, params)
        qs = build_list_query(spec, params)
        if params.return_all:
            return client.fetch_all(
                spec.method,
                path,
                query=qs,
                page_size=clamp_page_size(params.page_size or MAX_PAGE_SIZE),
            )

        page_size = clamp_page_size(min(params.page_size or params.limit, params.limit))
        return client.fetch_all(
            spec.method,
            path,
            query=qs,
            limit=params.limit,
            page_size=page_size,
        )

    @reg.register(OperationKind.list_unpaged)
    def _list_unpaged(client: CPQClient, spec: OperationSpec, params: OperationParams) -> list[Any]:
        res = client.execute(spec.method, render_path(spec, params))
        if res is None:
            return []
        return res if isinstance(res, list) else [res]

    @reg.register(OperationKind.send_json)
    def _send_json(client: CPQClient, spec: OperationSpec, params: OperationParams) -> list[Any]:
        path = render_path(spec, params)
        field_name = spec.body_field or "body_json"
        body = parse_json_field(getattr(params, field_name), field_name=field_name, default={})
        return [client.execute(spec.method, path, body=body)]

    @reg.register(OperationKind.patch)
    def _patch(client: CPQClient, spec: OperationSpec, params: OperationParams) -> list[Any]:
        path = render_path(spec, params)
        body = parse_patch_operations(params.patch_operations)
        return [client.execute(spec.method, path, body=body)]

    @reg.register(OperationKind.delete)
    def _delete(client: CPQClient, spec: OperationSpec, params: OperationParams) -> list[Any]:
        path = render_path(spec, params)
        client.execute(spec.method, path)
        # The last path parameter identifies the deleted record.
        deleted_id = getattr(params, spec.path_params[-1])
        return [{"id": str(deleted_id), "success": True}]

    @reg.register(OperationKind.action)
    def _action(client: CPQClient, spec: OperationSpec, params: OperationParams) -> list[Any]:
        return [client.execute(spec.method, render_path(spec, params))]

    return reg


class CPQOperationRunner:
    """Run catalogue operations against a CPQClient."""

    def __init__(self, client: CPQClient, registry: OperationRegistry | None = None) -> None:
        self._client = client
        self._registry = registry or _default_registry()
        missing = self._registry.missing_kinds()
        if missing:
            names = ", ".join(sorted(k.value for k in missing))
            raise RuntimeError(f"No handler registered for operation kinds: {names}")

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    def run(
        self,
        resource: str | Resource,
        operation: str | Operation,
        params: OperationParams | None = None,
    ) -> list[Any]:
        spec = get_operation_spec(resource, operation)
        handler = self._registry.get(spec.kind)
        if handler is None:
            raise RuntimeError(f"No handler registered for {spec.kind.value}")
        return handler(self._client, spec, params or OperationParams())

    def run_batch(
        self,
        resource: str | Resource,
        operation: str | Operation,
        items: list[OperationParams],
        *,
        continue_on_fail: bool = False,
    ) -> list[dict[str, Any]]:
        """Run an operation once per input item, in order.

        With `continue_on_fail`, a CPQError on one item becomes an error record
        for that item; otherwise the first failure aborts the batch.
        """

        spec = get_operation_spec(resource, operation)
        results: list[dict[str, Any]] = []
        for i, params in enumerate(items):
            try:
                records = self.run(spec.resource, spec.operation, params)
            except CPQError as e:
                if not continue_on_fail:
                    raise
                logger.warning(
                    f"CPQ {spec.resource.value}/{spec.operation.value} failed for item {i}: {e}"
                )
                results.append({"json": {"error": str(e)}, "paired_item": i})
                continue
            results.extend({"json": record, "paired_item": i} for record in records)

        logger.info(
            f"CPQ {spec.resource.value}/{spec.operation.value}: "
            f"{len(items)} items -> {len(results)} results"
        )
        return results
