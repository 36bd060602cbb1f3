"""
Companion Analyze Usecase.

Runs one analysis call per supplied modality concurrently and merges the
results by modality.
"""

import asyncio
import logging
from typing import Dict, Optional

from apps.companion.errors import CompanionError, InputError
from apps.companion.messages import describe_analysis_error
from apps.companion.prompt_client import PromptClient
from apps.companion.schemas import (
    MODALITY_ORDER,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    Modality,
)

logger = logging.getLogger(__name__)


def derive_primary_condition(outcome: AnalysisOutcome) -> Optional[str]:
    """
    First condition of the first modality (text, voice, video) that has any.

    Not confidence-ranked across modalities.
    """
    for modality in MODALITY_ORDER:
        result = outcome.get(modality)
        if result is not None and result.conditions:
            return result.conditions[0].name
    return None


class AnalysisOrchestrator:
    """
    Usecase for multi-modal analysis.

    A failed modality only nulls its own slot (recorded in `failures`); the
    call raises only when every requested modality failed.
    """

    def __init__(self, prompt_client: PromptClient):
        self.prompt_client = prompt_client

    async def analyze(self, request: AnalysisRequest) -> AnalysisOutcome:
        modalities = request.modalities()
        if not modalities:
            raise InputError("No valid input provided. Please provide text, voice, or video input.")

        logger.info("Analyzing modalities: %s", ", ".join(m.value for m in modalities))
        results = await asyncio.gather(
            *(self.prompt_client.run_analysis(m, request.payload_for(m)) for m in modalities),
            return_exceptions=True,
        )

        slots: Dict[str, AnalysisResult] = {}
        failures: Dict[Modality, str] = {}
        errors = []
        for modality, result in zip(modalities, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("%s analysis failed: %s", modality.value, result)
                failures[modality] = describe_analysis_error(result)
                errors.append(result)
                continue
            slots[f"{modality.value}_analysis"] = result

        if errors and len(errors) == len(modalities):
            first = errors[0]
            if isinstance(first, CompanionError):
                raise first
            raise CompanionError(str(first)) from first

        return AnalysisOutcome(**slots, failures=failures)
