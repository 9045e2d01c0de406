"""CsvImport model: durable record of one bulk CSV import job."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from sitetracker.database import Base


class CsvImport(Base):
    """Persistent import job created when a CSV file is submitted.

    The row is the authoritative state of the job: the import engine writes
    running counts to it while processing, and clients that lose their
    progress stream poll it by id.

    Attributes:
        id: Primary key, returned to the client as ``importId``.
        filename: Stored filename (relative to ``UPLOADS_DIR``).
        original_filename: Filename supplied by the uploader.
        total_rows: Data rows in the file (header excluded).
        processed_rows: Rows handled so far, successful or not.
        success_count: Rows created, updated or skipped.
        error_count: Rows rejected.
        created_count: Rows inserted as new project sites.
        updated_count: Rows that overwrote an existing site.
        skipped_count: Duplicate rows left untouched.
        conflict_count: Rejected rows that still need an override/skip decision.
        errors_json: JSON list of ``{rowNumber, siteCode, errors}`` objects,
            stored as text so the full list survives for the error report.
        imported_by: FK to the submitting User.
        status: ``Pending``, ``Processing``, ``Completed``, ``Partial`` or ``Failed``.
        started_at: When the engine began processing.
        completed_at: When the job reached a terminal status.
        created_at: Submission timestamp.
    """

    __tablename__ = "csv_imports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=True)
    total_rows = Column(Integer, default=0, nullable=False)
    processed_rows = Column(Integer, default=0, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    created_count = Column(Integer, default=0, nullable=False)
    updated_count = Column(Integer, default=0, nullable=False)
    skipped_count = Column(Integer, default=0, nullable=False)
    conflict_count = Column(Integer, default=0, nullable=False)
    errors_json = Column(Text, nullable=True)
    imported_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default="Pending", nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
