from populator import BackendPopulator
from processing_context import (
    HARD_ERROR,
    INVALID_PROGRAMME_COMBINATION,
    ProcessingContext,
)
from validators import ProgrammeValidator

STATUS_OK = "ok"
STATUS_INVALID_COMBINATION = "invalid_combination"
STATUS_HARD_ERROR = "hard_error"


def classify_errors(errors: list[dict]) -> str:
    """Branch on error kind: HARD_ERROR wins over combination errors."""
    kinds = {e["type"] for e in errors}
    if HARD_ERROR in kinds:
        return STATUS_HARD_ERROR
    if INVALID_PROGRAMME_COMBINATION in kinds:
        return STATUS_INVALID_COMBINATION
    return STATUS_OK


def run_pipeline(store, programme_ids: list[str]) -> dict:
    """
    Validate a programme combination and, when valid, build its payloads.

    Returns:
      {
        "status":            "ok" | "invalid_combination" | "hard_error",
        "programmes":        [...],  # per-programme payloads, empty unless ok
        "lookup_maps":       {...},
        "global_validation": {"is_valid", "errors", "summary"},
        "stats":             {...},
      }
    """
    context = ProcessingContext()
    ProgrammeValidator(store, context).validate_programmes(programme_ids)

    payloads: list[dict] = []
    lookup_maps: dict = {}
    if not context.has_fatal_errors():
        populator = BackendPopulator(context, store)
        payloads = populator.build_payloads()
        lookup_maps = populator.lookup_maps

    status = classify_errors(context.get_errors())
    if status != STATUS_OK:
        payloads, lookup_maps = [], {}

    return {
        "status": status,
        "programmes": payloads,
        "lookup_maps": lookup_maps,
        "global_validation": {
            "is_valid": status == STATUS_OK,
            "errors": context.get_errors(),
            "summary": context.get_summary(),
        },
        "stats": context.get_processing_stats(),
    }
