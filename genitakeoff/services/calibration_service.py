import logging

from genitakeoff.constants import DEFAULT_DISPLAY_UNIT
from genitakeoff.domain.calibration import Calibration, CalibrationScope, ratio_from_points
from genitakeoff.domain.takeoff import validate_page_number
from genitakeoff.domain.units import parse_length_to_meters, to_display_unit
from genitakeoff.errors import CalibrationConflictError, ValidationError
from genitakeoff.services.persistence import run_db

logger = logging.getLogger(__name__)


def _calibration_from_row(row) -> Calibration:
    page = row.get("page_number")
    return Calibration(
        scope=CalibrationScope(row["document_id"], int(page) if page is not None else None),
        ratio=row["ratio"],
        display_unit=row.get("display_unit") or DEFAULT_DISPLAY_UNIT,
        project_id=row.get("project_id"),
        label=row.get("label"),
        id=row.get("id"),
    )


class CalibrationService:
    """Stores one calibration per document or page and resolves the one in effect.

    Ratios are metres per document pixel. A page calibration overrides the
    document default for that page only.
    """

    def __init__(self, db, allow_page_scope=True):
        self.db = db
        self.allow_page_scope = allow_page_scope

    def _check_scope(self, scope) -> CalibrationScope:
        scope = scope if isinstance(scope, CalibrationScope) else CalibrationScope(*scope)
        if not scope.document_id:
            raise ValidationError("A document is required for calibration.")
        if scope.page_number is not None:
            if not self.allow_page_scope:
                raise ValidationError("Per-page calibration is disabled.")
            scope = CalibrationScope(scope.document_id, validate_page_number(scope.page_number))
        return scope

    async def get(self, scope) -> Calibration | None:
        scope = self._check_scope(scope)
        row = await run_db(self.db.get_calibration, scope.document_id, scope.page_number)
        return _calibration_from_row(row) if row else None

    async def resolve(self, document_id, page_number) -> Calibration | None:
        if self.allow_page_scope:
            page_cal = await self.get(CalibrationScope(document_id, page_number))
            if page_cal is not None:
                return page_cal
        return await self.get(CalibrationScope(document_id))

    async def list_for_project(self, project_id) -> list[Calibration]:
        rows = await run_db(self.db.list_calibrations, project_id)
        calibrations = [_calibration_from_row(row) for row in rows]
        if not self.allow_page_scope:
            calibrations = [cal for cal in calibrations if cal.scope.is_document_wide]
        return calibrations

    async def set_calibration(
        self,
        project_id,
        scope,
        ratio,
        display_unit=DEFAULT_DISPLAY_UNIT,
        label=None,
        confirm_replace=False,
    ) -> Calibration:
        scope = self._check_scope(scope)
        candidate = Calibration(scope=scope, ratio=ratio, display_unit=display_unit, project_id=project_id, label=label)
        existing = await self.get(scope)
        if existing is not None and not confirm_replace:
            raise CalibrationConflictError(
                f"{self.describe_scope(scope)} is already calibrated; confirm to replace it."
            )
        if existing is not None:
            logger.info("Replacing calibration for %s (%.6g -> %.6g)", self.describe_scope(scope), existing.ratio, candidate.ratio)
        row = await run_db(
            self.db.save_calibration,
            project_id,
            scope.document_id,
            scope.page_number,
            candidate.ratio,
            candidate.display_unit,
            label,
        )
        return _calibration_from_row(row)

    async def calibrate_from_line(
        self,
        project_id,
        scope,
        start,
        end,
        known_length,
        unit=DEFAULT_DISPLAY_UNIT,
        display_unit=None,
        confirm_replace=False,
    ) -> Calibration:
        """Calibrate from a line drawn over a dimension of known real length."""
        meters = to_display_unit(known_length, unit, "m")
        ratio = ratio_from_points(start, end, meters)
        return await self.set_calibration(
            project_id,
            scope,
            ratio,
            display_unit=display_unit or unit,
            confirm_replace=confirm_replace,
        )

    async def calibrate_from_text(
        self,
        project_id,
        scope,
        start,
        end,
        text,
        display_unit=DEFAULT_DISPLAY_UNIT,
        confirm_replace=False,
    ) -> Calibration:
        meters = parse_length_to_meters(text, default_unit=display_unit)
        return await self.calibrate_from_line(
            project_id,
            scope,
            start,
            end,
            meters,
            unit="m",
            display_unit=display_unit,
            confirm_replace=confirm_replace,
        )

    async def clear(self, scope) -> bool:
        scope = self._check_scope(scope)
        return await run_db(self.db.delete_calibration, scope.document_id, scope.page_number)

    @staticmethod
    def describe_scope(scope: CalibrationScope) -> str:
        if scope.page_number is None:
            return f"Document {scope.document_id}"
        return f"Page {scope.page_number} of document {scope.document_id}"


__all__ = ["CalibrationService"]
