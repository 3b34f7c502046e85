"""EcoVoice environmental violation reports: model, stores, and draft/submit flow."""

from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timezone
from typing import Any, Literal, Protocol

import httpx
from rich.console import Console

from .config import ClimateVisionConfig
from .errors import StorageError, ValidationError
from .media import ensure_supported_image
from .notifications import NotificationCenter
from .storage import ObjectStorage, generate_object_name

console = Console()

ReportStatus = Literal["draft", "submitted"]

VIOLATION_TYPES = [
    "air-pollution",
    "water-pollution",
    "noise-pollution",
    "soil-contamination",
    "illegal-dumping",
    "deforestation",
    "other",
]

SEVERITIES = ["low", "medium", "high", "critical"]

# Fields that must be non-empty before a report can be submitted
MANDATORY_FIELDS = [
    "violation_type",
    "severity",
    "location",
    "incident_date",
    "description",
    "reporter_name",
    "reporter_email",
]

FIELD_LABELS = {
    "violation_type": "Violation type",
    "severity": "Severity level",
    "pollutant": "Pollutant",
    "location": "Location",
    "incident_date": "Date of incident",
    "incident_time": "Time of incident",
    "description": "Description",
    "additional_info": "Additional information",
    "reporter_name": "Reporter name",
    "reporter_email": "Email",
    "reporter_phone": "Phone number",
}

# Stand-ins for mandatory fields left empty in a draft
DRAFT_PLACEHOLDERS = {
    "violation_type": "other",
    "severity": "low",
    "location": "Location not specified",
    "description": "Draft - description pending",
    "reporter_name": "Anonymous",
    "reporter_email": "draft@example.com",
}

REPORT_IMAGE_PREFIX = "report-evidence"
STORE_TIMEOUT = 30.0


@dataclass
class ReportForm:
    """Editable report form state."""

    violation_type: str = ""
    severity: str = ""
    pollutant: str = ""
    location: str = ""
    incident_date: str = ""
    incident_time: str = ""
    description: str = ""
    additional_info: str = ""
    reporter_name: str = ""
    reporter_email: str = ""
    reporter_phone: str = ""

    # Not user-editable: set by the flow
    image_url: str | None = None
    image_preview: str | None = None
    draft_id: str | None = None

    def filled_fields(self) -> list[str]:
        """Names of user-editable fields with non-blank values."""
        return [name for name in FIELD_LABELS if getattr(self, name).strip()]

    def missing_mandatory(self) -> list[str]:
        return [name for name in MANDATORY_FIELDS if not getattr(self, name).strip()]

    def clear(self) -> None:
        """Reset every field, including preview and draft identity."""
        for f in fields(self):
            setattr(self, f.name, f.default)


@dataclass
class Report:
    """A persisted report row."""

    violation_type: str
    severity: str
    location: str
    incident_date: str
    description: str
    reporter_name: str
    reporter_email: str
    status: ReportStatus
    pollutant: str | None = None
    incident_time: str | None = None
    additional_info: str | None = None
    reporter_phone: str | None = None
    image_url: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    id: str | None = None

    def to_row(self) -> dict[str, Any]:
        """Column mapping for the reports table (``id`` left to the store)."""
        row = asdict(self)
        row.pop("id")
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Report":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in known}
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return cls(**data)


class ReportStore(Protocol):
    """Persistence for report rows."""

    def insert(self, report: Report) -> Report: ...

    def update(self, report_id: str, report: Report) -> Report | None: ...

    def list_submitted(self) -> list[Report]: ...


class InMemoryReportStore:
    """Process-local report table."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def insert(self, report: Report) -> Report:
        report_id = str(uuid.uuid4())
        with self._lock:
            self.rows[report_id] = {**report.to_row(), "id": report_id}
            return Report.from_row(self.rows[report_id])

    def update(self, report_id: str, report: Report) -> Report | None:
        """Replace a row; ``created_at`` is only refreshed when the report is submitted."""
        with self._lock:
            if report_id not in self.rows:
                return None
            row = {**report.to_row(), "id": report_id}
            if report.status == "draft":
                row["created_at"] = self.rows[report_id]["created_at"]
            self.rows[report_id] = row
            return Report.from_row(self.rows[report_id])

    def list_submitted(self) -> list[Report]:
        with self._lock:
            rows = [r for r in self.rows.values() if r["status"] == "submitted"]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [Report.from_row(r) for r in rows]


class SupabaseReportStore:
    """Reports table through the PostgREST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "reports",
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key
        self._client = client

    @classmethod
    def from_config(cls, config: ClimateVisionConfig, client: httpx.Client | None = None) -> "SupabaseReportStore":
        return cls(config.supabase_url, config.supabase_key, config.reports_table, client=client)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _send(self, method: str, **kwargs: Any) -> list[dict[str, Any]]:
        client = self._client or httpx.Client(timeout=STORE_TIMEOUT)
        try:
            response = client.request(method, self.endpoint, headers=self._headers(), **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise StorageError(
                f"Report store error ({e.response.status_code}): {e.response.text}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise StorageError(f"Report store request failed: {e}") from e
        finally:
            if self._client is None:
                client.close()
        return data if isinstance(data, list) else [data]

    def insert(self, report: Report) -> Report:
        rows = self._send("POST", json=report.to_row())
        if not rows:
            raise StorageError("Report store returned no row for insert")
        return Report.from_row(rows[0])

    def update(self, report_id: str, report: Report) -> Report | None:
        row = report.to_row()
        # Drafts keep their creation time; submitting stamps the submit time
        if report.status == "draft":
            row.pop("created_at")
        rows = self._send("PATCH", params={"id": f"eq.{report_id}"}, json=row)
        return Report.from_row(rows[0]) if rows else None

    def list_submitted(self) -> list[Report]:
        rows = self._send(
            "GET",
            params={"select": "*", "status": "eq.submitted", "order": "created_at.desc"},
        )
        return [Report.from_row(r) for r in rows]


def report_store_from_config(config: ClimateVisionConfig) -> ReportStore:
    """Hosted store when configured, in-memory otherwise."""
    if config.has_backend:
        return SupabaseReportStore.from_config(config)
    console.print("[dim]No backend configured - reports are kept in memory[/]")
    return InMemoryReportStore()


def _optional(value: str) -> str | None:
    return value.strip() or None


def _check_choices(form: ReportForm) -> None:
    """Reject non-empty enumerated values outside their choice lists."""
    if form.violation_type.strip() and form.violation_type.strip() not in VIOLATION_TYPES:
        raise ValidationError(
            f"Unknown violation type: {form.violation_type}", fields=["violation_type"]
        )
    if form.severity.strip() and form.severity.strip() not in SEVERITIES:
        raise ValidationError(f"Unknown severity level: {form.severity}", fields=["severity"])


class ReportFlow:
    """
    Draft and submit transitions for the report form.

    Both transitions validate locally before touching storage or the store.
    A draft keeps its row id on the form, so re-saving updates the same row
    and submitting promotes it instead of inserting a duplicate.
    """

    def __init__(
        self,
        store: ReportStore,
        storage: ObjectStorage | None,
        notifications: NotificationCenter,
        bucket: str = "report-images",
    ) -> None:
        self.store = store
        self.storage = storage
        self.notifications = notifications
        self.bucket = bucket

    def _upload_image(self, form: ReportForm, image: tuple[bytes, str] | None) -> None:
        """Attach an evidence image to the form; failures only warn."""
        if image is None:
            return
        data, mime_type = image
        try:
            if self.storage is None:
                raise StorageError("No storage configured for evidence images")
            mime_type = ensure_supported_image(data, mime_type)
            name = generate_object_name(REPORT_IMAGE_PREFIX, mime_type)
            self.storage.upload(self.bucket, name, data, mime_type)
            form.image_url = self.storage.public_url(self.bucket, name)
        except (StorageError, ValidationError) as e:
            console.print(f"[yellow]Evidence image upload failed: {e}[/]")
            self.notifications.warning(
                "Image upload failed - the report was saved without the image."
            )

    def _persist(self, form: ReportForm, report: Report) -> Report:
        if form.draft_id:
            saved = self.store.update(form.draft_id, report)
            if saved is not None:
                return saved
            console.print(f"[yellow]Draft {form.draft_id} not found, inserting a new row[/]")
        return self.store.insert(report)

    def save_draft(self, form: ReportForm, image: tuple[bytes, str] | None = None) -> Report:
        """
        Save the form as a draft.

        Raises:
            ValidationError: If every field is empty, even with an image attached
                (nothing is stored)
        """
        if not form.filled_fields():
            raise ValidationError("Please fill in at least one field before saving a draft")
        _check_choices(form)

        self._upload_image(form, image)

        def value(name: str) -> str:
            return getattr(form, name).strip() or DRAFT_PLACEHOLDERS[name]

        report = Report(
            violation_type=value("violation_type"),
            severity=value("severity"),
            location=value("location"),
            incident_date=form.incident_date.strip() or date.today().isoformat(),
            description=value("description"),
            reporter_name=value("reporter_name"),
            reporter_email=value("reporter_email"),
            status="draft",
            pollutant=_optional(form.pollutant),
            incident_time=_optional(form.incident_time),
            additional_info=_optional(form.additional_info),
            reporter_phone=_optional(form.reporter_phone),
            image_url=form.image_url,
        )
        saved = self._persist(form, report)
        # Form stays populated so editing can continue
        form.draft_id = saved.id
        self.notifications.info("Draft saved. You can keep editing and submit later.")
        return saved

    def submit(self, form: ReportForm, image: tuple[bytes, str] | None = None) -> Report:
        """
        Submit the form.

        Raises:
            ValidationError: If any mandatory field is empty (nothing is stored)
        """
        missing = form.missing_mandatory()
        if missing:
            labels = ", ".join(FIELD_LABELS[name] for name in missing)
            raise ValidationError(
                f"Please fill out all required fields: {labels}", fields=missing
            )
        _check_choices(form)
        if "@" not in form.reporter_email:
            raise ValidationError("Please enter a valid email address", fields=["reporter_email"])

        self._upload_image(form, image)

        report = Report(
            violation_type=form.violation_type.strip(),
            severity=form.severity.strip(),
            location=form.location.strip(),
            incident_date=form.incident_date.strip(),
            description=form.description.strip(),
            reporter_name=form.reporter_name.strip(),
            reporter_email=form.reporter_email.strip(),
            status="submitted",
            pollutant=_optional(form.pollutant),
            incident_time=_optional(form.incident_time),
            additional_info=_optional(form.additional_info),
            reporter_phone=_optional(form.reporter_phone),
            image_url=form.image_url,
        )
        saved = self._persist(form, report)
        form.clear()
        self.notifications.success(
            "Report submitted. Your environmental report has been forwarded to relevant authorities."
        )
        return saved

    def list_submitted(self) -> list[Report]:
        """Submitted reports, newest first."""
        return self.store.list_submitted()
