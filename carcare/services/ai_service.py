# -*- coding: utf-8 -*-
"""
Remote AI (Gemini) with a deterministic local twin for every call.

analyze: car facts + candidate reference rows -> chosen row + reasoning
compare: entered vs. recommended -> verdict + itemized discrepancies + narrative

Each capability has a remote and a local implementation with the same
result shape; the orchestrators pick remote when a client is configured and
fall back to local on any failure. Failures never reach the caller.
"""

import atexit
import concurrent.futures
import json
import os
import time as pytime
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import current_app
from google.genai import types as genai_types
from json_repair import repair_json

import carcare.extensions as extensions
from carcare.models import Car
from carcare.services.mismatch import check_match, describe_mismatches
from carcare.services.recommendation import find_candidates, pick_candidate, recommended_spec
from carcare.utils.prompt_defense import bounded_json, create_data_only_instruction, escape_prompt_mapping
from carcare.utils.sanitization import sanitize_analyze_output, sanitize_compare_output

AI_EXECUTOR_WORKERS = int(os.environ.get("AI_EXECUTOR_WORKERS", "4"))
AI_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=AI_EXECUTOR_WORKERS)
atexit.register(lambda: AI_EXECUTOR.shutdown(wait=False))

SOURCE_AI = "ai"
SOURCE_LOCAL = "local"
RATE_LIMITED = "RATE_LIMITED"


# ======================================================
# === JSON / executor helpers
# ======================================================

def parse_model_json(raw: str) -> Tuple[Optional[dict], Optional[str]]:
    if not raw:
        return None, "EMPTY_RESPONSE"
    try:
        parsed = json.loads(raw)
    except Exception:
        try:
            parsed = json.loads(repair_json(raw))
        except Exception:
            return None, "MODEL_JSON_INVALID"
    if not isinstance(parsed, dict):
        return None, "MODEL_JSON_INVALID"
    return parsed, None


def _execute_with_timeout(fn: Callable[[], Any], timeout_sec: float):
    try:
        work_queue = getattr(AI_EXECUTOR, "_work_queue", None)
        if work_queue is not None and work_queue.qsize() >= AI_EXECUTOR_WORKERS:
            return None, "EXECUTOR_SATURATED"
        future = AI_EXECUTOR.submit(fn)
    except RuntimeError:
        return None, "EXECUTOR_SATURATED"
    try:
        return future.result(timeout=timeout_sec), None
    except concurrent.futures.TimeoutError:
        # cancel() cannot stop a running call; the late response is discarded
        future.cancel()
        return None, "CALL_TIMEOUT"
    except Exception as e:
        return None, e


def _is_rate_limit_error(err: Exception) -> bool:
    code = getattr(err, "code", None) or getattr(err, "status_code", None)
    return code == 429


def call_gemini_once(prompt: str) -> Tuple[Optional[dict], Optional[str]]:
    """Single bounded call. Returns (parsed_json, error_code)."""
    client = extensions.ai_client
    if client is None:
        return None, "CLIENT_NOT_INITIALIZED"
    config = genai_types.GenerateContentConfig(
        temperature=0.2,
        top_p=0.9,
        response_mime_type="application/json",
    )
    model_id = current_app.config.get("GEMINI_MODEL_ID", extensions.GEMINI_MODEL_ID)

    def _invoke():
        return client.models.generate_content(model=model_id, contents=prompt, config=config)

    start = pytime.perf_counter()
    resp, err = _execute_with_timeout(_invoke, current_app.config.get("AI_CALL_TIMEOUT_SEC", 15))
    current_app.logger.info(
        "[AI] model=%s duration_ms=%.2f err=%s",
        model_id,
        (pytime.perf_counter() - start) * 1000,
        err if isinstance(err, str) else (type(err).__name__ if err else None),
    )
    if err == "EXECUTOR_SATURATED":
        return None, "SERVER_BUSY"
    if err == "CALL_TIMEOUT":
        return None, "CALL_TIMEOUT"
    if isinstance(err, Exception):
        if _is_rate_limit_error(err):
            return None, RATE_LIMITED
        return None, f"CALL_FAILED:{type(err).__name__}"
    if resp is None:
        return None, "CALL_FAILED:EMPTY"
    return parse_model_json((getattr(resp, "text", "") or "").strip())


def call_model_with_retry(prompt: str) -> Tuple[Optional[dict], Optional[str]]:
    """
    Retry only on rate-limit answers, a fixed number of attempts with a fixed
    backoff. Timeouts and other failures go straight to the fallback.
    """
    attempts = max(1, int(current_app.config.get("AI_MAX_ATTEMPTS", 2)))
    backoff = float(current_app.config.get("AI_RETRY_BACKOFF_SEC", 2))
    err = None
    for attempt in range(1, attempts + 1):
        parsed, err = call_gemini_once(prompt)
        if err != RATE_LIMITED:
            return parsed, err
        current_app.logger.warning("[AI] rate limited (attempt %d/%d)", attempt, attempts)
        if attempt < attempts:
            pytime.sleep(backoff)
    return None, err


def ai_enabled() -> bool:
    return extensions.ai_client is not None


# ======================================================
# === analyze
# ======================================================

def _candidate_view(car: Car) -> Dict[str, Any]:
    return {
        "reference_id": car.id,
        "year_from": car.year_from,
        "year_to": car.year_to,
        "oil_type": car.oil_type,
        "oil_viscosity": car.oil_viscosity,
        "oil_quantity": float(car.oil_quantity),
    }


def build_analyze_prompt(vehicle: Dict[str, Any], candidates: List[Car]) -> str:
    car_data = escape_prompt_mapping({
        "brand": vehicle.get("brand"),
        "model": vehicle.get("model"),
        "year": vehicle.get("year"),
        "engine_size": vehicle.get("engine_size"),
    })
    options = [_candidate_view(c) for c in candidates]
    return f"""
{create_data_only_instruction()}

You are an automotive lubrication expert for a car maintenance workshop.
Choose the correct engine oil for the car below. You MUST choose exactly one of
the reference options; never invent a product, viscosity or quantity.

Car:
{bounded_json(car_data)}

Reference options (from the workshop database):
{json.dumps(options, ensure_ascii=False)}

Return ONLY JSON:
{{"reference_id": <id of the chosen option>, "oil_type": "", "oil_viscosity": "", "oil_quantity": 0, "reasoning": "short explanation in Arabic"}}
""".strip()


def _result_from_car(car: Car, reasoning: str, source: str, fallback_reason: Optional[str] = None) -> Dict[str, Any]:
    result = recommended_spec(car)
    result.update({
        "reasoning": reasoning,
        "source": source,
        "used_fallback": source != SOURCE_AI,
        "fallback_reason": fallback_reason,
    })
    return result


def local_analyze(vehicle: Dict[str, Any], candidates: List[Car], fallback_reason: Optional[str] = None) -> Optional[Dict[str, Any]]:
    car = pick_candidate(candidates)
    if car is None:
        return None
    reasoning = (
        f"الزيت الموصى به لسيارة {car.brand} {car.model} ({car.year_from}-{car.year_to}) "
        f"بمحرك {car.engine_size} حسب قاعدة البيانات"
    )
    return _result_from_car(car, reasoning, SOURCE_LOCAL, fallback_reason)


def _match_candidate(answer: Dict[str, Any], candidates: List[Car]) -> Optional[Car]:
    by_id = {c.id: c for c in candidates}
    if answer.get("reference_id") in by_id:
        return by_id[answer["reference_id"]]
    quantity = answer.get("oil_quantity")
    for car in candidates:
        if (
            answer.get("oil_type", "").lower() == car.oil_type.lower()
            and answer.get("oil_viscosity", "").lower() == car.oil_viscosity.lower()
            and quantity is not None
            and abs(quantity - float(car.oil_quantity)) < 0.01
        ):
            return car
    return None


def remote_analyze(vehicle: Dict[str, Any], candidates: List[Car]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    if not candidates:
        return None, "NO_CANDIDATES"
    raw, err = call_model_with_retry(build_analyze_prompt(vehicle, candidates))
    if err:
        return None, err
    answer = sanitize_analyze_output(raw)
    if answer is None:
        return None, "MODEL_JSON_INVALID"
    car = _match_candidate(answer, candidates)
    if car is None:
        return None, "ANSWER_NOT_IN_CANDIDATES"
    reasoning = answer.get("reasoning") or ""
    return _result_from_car(car, reasoning, SOURCE_AI), None


def analyze_recommendation(vehicle: Dict[str, Any], use_ai: bool = True) -> Optional[Dict[str, Any]]:
    """
    Resolve the recommended oil for ``vehicle``. None means the car has no
    reference row. The remote model may only choose among the candidates.
    """
    candidates = find_candidates(vehicle["brand"], vehicle["model"], vehicle["year"], vehicle["engine_size"])
    if not candidates:
        return None
    if not use_ai:
        return local_analyze(vehicle, candidates)
    if not ai_enabled():
        return local_analyze(vehicle, candidates, "CLIENT_NOT_INITIALIZED")

    result, err = remote_analyze(vehicle, candidates)
    if err:
        current_app.logger.warning("[AI] analyze fallback reason=%s", err)
        return local_analyze(vehicle, candidates, err)
    return result


# ======================================================
# === compare
# ======================================================

def build_compare_prompt(service_data: Dict[str, Any], recommended: Dict[str, Any], mismatches: List[Dict[str, Any]]) -> str:
    entered = escape_prompt_mapping({
        "brand": service_data.get("brand"),
        "model": service_data.get("model"),
        "year": service_data.get("year"),
        "oil_used": service_data.get("oil_used"),
        "oil_viscosity": service_data.get("oil_viscosity"),
        "oil_quantity": service_data.get("oil_quantity"),
    })
    return f"""
{create_data_only_instruction("service_data")}

You review engine oil services in a car maintenance workshop. The comparison
below has already been computed by the workshop system (oil type and viscosity
must match exactly, quantity within 0.5 liters). Do not change the verdict;
explain it to the technician.

Entered by the technician:
{bounded_json(entered, boundary_tag="service_data")}

Recommended spec:
{json.dumps(recommended, ensure_ascii=False)}

Detected discrepancies:
{json.dumps(mismatches, ensure_ascii=False)}

Return ONLY JSON with Arabic text:
{{"analysis": "short analysis", "recommendation": "what the technician should do"}}
""".strip()


def _compare_result(verdict: Dict[str, Any], narrative: Dict[str, str], source: str, fallback_reason: Optional[str] = None) -> Dict[str, Any]:
    return {
        "is_matching": verdict["is_matching"],
        "mismatches": verdict["mismatches"],
        "analysis": narrative.get("analysis", ""),
        "recommendation": narrative.get("recommendation", ""),
        "source": source,
        "used_fallback": source != SOURCE_AI,
        "fallback_reason": fallback_reason,
    }


def local_compare(service_data: Dict[str, Any], recommended: Dict[str, Any], fallback_reason: Optional[str] = None) -> Dict[str, Any]:
    verdict = check_match(service_data, recommended)
    return _compare_result(verdict, describe_mismatches(verdict, recommended), SOURCE_LOCAL, fallback_reason)


def remote_compare(service_data: Dict[str, Any], recommended: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    verdict = check_match(service_data, recommended)
    raw, err = call_model_with_retry(build_compare_prompt(service_data, recommended, verdict["mismatches"]))
    if err:
        return None, err
    narrative = sanitize_compare_output(raw)
    if narrative is None:
        return None, "MODEL_JSON_INVALID"
    return _compare_result(verdict, narrative, SOURCE_AI), None


def compare_with_fallback(service_data: Dict[str, Any], recommended: Dict[str, Any], use_ai: bool = True) -> Dict[str, Any]:
    """
    Same shape whichever path answered. The verdict always comes from the
    deterministic checker; the model only supplies the narrative.
    """
    if not use_ai:
        return local_compare(service_data, recommended)
    if not ai_enabled():
        return local_compare(service_data, recommended, "CLIENT_NOT_INITIALIZED")

    result, err = remote_compare(service_data, recommended)
    if err:
        current_app.logger.warning("[AI] compare fallback reason=%s", err)
        return local_compare(service_data, recommended, err)
    return result
