import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from application.config import DEFAULT_API_URL
from domain.errors import AuthError, ConfigurationError, SchemaError, TransientError
from domain.package_spec import CARGO, GIT, GO, KNOWN_ECOSYSTEMS, CatalogSnapshot, PackageSpec
from domain.version_constraint import satisfies

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429}


class CatalogRecordFields(BaseModel):
    """The `fields` object of one catalog table row."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    package_name: str = Field(..., alias="Package Name", min_length=1)
    ecosystem: str = Field(CARGO, alias="Ecosystem")
    version: Optional[str] = Field(None, alias="Version")
    source: Optional[str] = Field(None, alias="Source")
    author: Optional[str] = Field(None, alias="Name")
    description: Optional[str] = Field(None, alias="Description")

    @field_validator("package_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value or any(c.isspace() for c in value):
            raise ValueError("package name must be a single non-empty word")
        return value

    @field_validator("ecosystem", mode="before")
    @classmethod
    def _normalize_ecosystem(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return CARGO
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in KNOWN_ECOSYSTEMS:
                raise ValueError(f"unknown ecosystem {value!r}")
        return value

    @field_validator("version", "source", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_locator_and_version(self) -> "CatalogRecordFields":
        if self.ecosystem in (GIT, GO) and not self.source:
            raise ValueError(f"{self.ecosystem} packages need a Source")
        if self.version and self.ecosystem in (CARGO, GO):
            # raises ValueError for unparseable requirements
            satisfies("0.0.0", self.version)
        return self

    def to_spec(self) -> PackageSpec:
        return PackageSpec(
            name=self.package_name,
            ecosystem=self.ecosystem,
            version=self.version,
            source=self.source,
            author=self.author,
            description=self.description
        )


def translate_record(record: Any) -> PackageSpec:
    """Turn one raw catalog record into a PackageSpec, raising SchemaError if it is malformed."""
    if not isinstance(record, dict):
        raise SchemaError("", f"expected an object, got {type(record).__name__}")

    record_id = str(record.get("id", ""))
    fields = record.get("fields")
    if not isinstance(fields, dict):
        raise SchemaError(record_id, "missing fields")

    try:
        return CatalogRecordFields.model_validate(fields).to_spec()
    except ValidationError as e:
        reasons = "; ".join(f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
                            for err in e.errors())
        raise SchemaError(record_id, reasons)


class AirtableCatalogClient:
    """
    Fetches the package catalog from an Airtable view.

    Only network-layer failures (timeouts, resets, 5xx, 429) are retried,
    sequentially, with capped exponential backoff and full jitter.
    """

    def __init__(
        self,
        base_id: str,
        table: str,
        view: str,
        api_url: str = DEFAULT_API_URL,
        page_size: int = 100,
        timeout: float = 30.0,
        max_attempts: int = 4,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] = random.random
    ):
        self.base_id = base_id
        self.table = table
        self.view = view
        self.api_url = api_url.rstrip('/')
        self.page_size = page_size
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.transport = transport
        self._sleep = sleep
        self._jitter = jitter

    def fetch(self, credential: Optional[str]) -> CatalogSnapshot:
        """
        Fetch every page of the catalog view.

        Raises:
            ConfigurationError: If no credential is given (no request is made)
                or the service rejects the table/view, or the API URL or proxy
                cannot be used at all
            AuthError: If the credential is rejected
            TransientError: If a page still fails after max_attempts
        """
        if not credential:
            raise ConfigurationError("No catalog credential configured")

        packages: List[PackageSpec] = []
        schema_errors: List[SchemaError] = []
        offset: Optional[str] = None
        pages = 0

        with httpx.Client(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {credential}"},
            timeout=self.timeout,
            transport=self.transport
        ) as client:
            while True:
                params: Dict[str, Any] = {"view": self.view, "pageSize": self.page_size}
                if offset:
                    params["offset"] = offset

                records, offset = self._get_page(client, params)
                pages += 1

                for record in records:
                    try:
                        packages.append(translate_record(record))
                    except SchemaError as e:
                        logger.warning("Skipping catalog record: %s", e)
                        schema_errors.append(e)

                if not offset:
                    break

        logger.info("Fetched %d catalog packages in %d page(s), %d malformed record(s) skipped",
                    len(packages), pages, len(schema_errors))
        return CatalogSnapshot(tuple(packages), tuple(schema_errors))

    def _get_page(self, client: httpx.Client, params: Dict[str, Any]) -> Tuple[List[Any], Optional[str]]:
        path = f"/{self.base_id}/{self.table}"
        cause: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = client.get(path, params=params)
            except (httpx.UnsupportedProtocol, httpx.ProxyError) as e:
                raise ConfigurationError(f"Catalog service at {self.api_url} is unreachable as configured: {e}")
            except httpx.TransportError as e:
                cause = e
            else:
                status = response.status_code
                if status in (401, 403):
                    raise AuthError(f"Catalog service rejected the credential (HTTP {status})")
                if status >= 500 or status in RETRYABLE_STATUS:
                    cause = httpx.HTTPStatusError(f"HTTP {status}", request=response.request, response=response)
                elif status >= 400:
                    raise ConfigurationError(
                        f"Catalog request for {self.base_id}/{self.table} rejected: HTTP {status} {response.text[:200]}"
                    )
                else:
                    try:
                        payload = response.json()
                    except ValueError as e:
                        cause = e
                    else:
                        if isinstance(payload, dict) and isinstance(payload.get("records", []), list):
                            return payload.get("records", []), payload.get("offset")
                        cause = ValueError("catalog page is not a record list")

            if attempt < self.max_attempts:
                delay = self._backoff(attempt)
                logger.warning("Catalog fetch attempt %d/%d failed (%s); retrying in %.2fs",
                               attempt, self.max_attempts, cause, delay)
                self._sleep(delay)

        raise TransientError(
            f"Catalog fetch failed after {self.max_attempts} attempts: {cause}",
            attempts=self.max_attempts,
            cause=cause
        )

    def _backoff(self, attempt: int) -> float:
        ceiling = min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))
        return ceiling * self._jitter()
