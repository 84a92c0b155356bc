from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from application.report_slot import ReportSlot
from domain.install_report import InstallReport


class InstallResultDTO(BaseModel):
    name: str = Field(..., description="Package name")
    ecosystem: str = Field(..., description="Backend that handled the package (cargo, go, apt, git)")
    version: Optional[str] = Field(None, description="Requested version constraint")
    status: str = Field(..., description="installed, skipped or failed")
    reason: Optional[str] = Field(None, description="Failure cause or skip note")


class InstallReportDTO(BaseModel):
    started_at: str = Field(..., description="When the install run started (ISO 8601)")
    dry_run: bool
    summary: str
    succeeded: bool
    results: List[InstallResultDTO]


report_slot: Optional[ReportSlot] = None


app = FastAPI(
    title="cargo-cult status",
    description="Read-only view of the provisioner's last install run",
    version="1.0.0"
)


def to_dto(report: InstallReport) -> InstallReportDTO:
    return InstallReportDTO(
        started_at=report.started_at.isoformat(),
        dry_run=report.dry_run,
        summary=report.summary(),
        succeeded=report.succeeded,
        results=[
            InstallResultDTO(
                name=r.spec.name,
                ecosystem=r.spec.ecosystem,
                version=r.spec.version,
                status=r.status.value,
                reason=r.reason
            )
            for r in report
        ]
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/v1/install-report", response_model=InstallReportDTO)
async def install_report():
    """Return the install report published when the gateway started."""
    if report_slot is None:
        raise HTTPException(status_code=500, detail="Server not properly configured")

    report = report_slot.get()
    if report is None:
        raise HTTPException(status_code=404, detail="No install report has been published")

    return to_dto(report)


def initialize_app(slot: ReportSlot) -> FastAPI:
    """Initialize the FastAPI application with the shared report slot."""
    global report_slot
    report_slot = slot
    return app
