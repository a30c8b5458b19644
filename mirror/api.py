"""
mirror/api.py
─────────────────────────────────────────────────────────────────────────────
Reasoning Mirror — Dual-mode API layer

TWO USAGE MODES:
  1. Importable module (chat and instructor request handlers):
         from mirror.api import MirrorAPI
         api = MirrorAPI()
         result = api.classify("some chat text")

  2. FastAPI HTTP server:
         python -m mirror.api                     # default: port 8766
         python -m mirror.api --port 9000
         uvicorn mirror.api:app --port 8766

ENDPOINTS:
  POST /classify            — crisis gate for one message
  POST /coverage            — rubric coverage, merged into a running record
  POST /gaming              — advisory submission-gaming signal
  POST /resolve             — match uploaded document text to student/week/type
  POST /chat/turn           — full rule layer (+ optional local model)
  POST /progress/exchanges  — record a week's exchange count
  POST /progress/status     — unlock + submission-window status
  POST /progress/submit     — latch midterm/final submission
  POST /report              — class progress summary
  GET  /incidents           — anonymized crisis incident counts
  GET  /health              — liveness

PRIVACY NOTE:
  Request bodies are never logged. The crisis hook writes category and
  timestamp only. The server binds to 127.0.0.1 by default.
"""

import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from mirror.config import gaming_thresholds, load_config, progress_settings
from mirror.detectors.coverage_detector import (
    count_addressed,
    detect_areas,
    merge_coverage,
    missing_areas,
    record_reflection,
)
from mirror.detectors.crisis_detector import response_for, screen_message
from mirror.detectors.gaming_detector import GamingMonitor, score
from mirror.exporters.sqlite_exporter import SqliteIncidentSink, incident_counts
from mirror.knowledge.course_tables import load_week_table
from mirror.models.record import AREA_IDS, AreaCoverage, GamingSignal
from mirror.pipeline import run_chat_turn
from mirror.progress.tracker import (
    SubmissionBlocked,
    completion_stats,
    create_empty_progress,
    is_final_unlocked,
    is_midterm_unlocked,
    is_within_submission_window,
    locked_message,
    progress_from_dict,
    progress_to_dict,
    record_exchanges,
    submission_window_message,
    submit_assessment,
    week_state,
)
from mirror.report import build_report, report_to_dict
from mirror.resolver.document_resolver import can_auto_confirm, resolve, roster_from_dicts

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def _gaming_to_dict(signal: GamingSignal) -> Dict[str, Any]:
    return {**asdict(signal), "flagged": signal.flagged}


def _coverage_from_dict(data: Optional[Dict[str, Any]]) -> AreaCoverage:
    data = data or {}
    return AreaCoverage(**{a: bool(data.get(a, False)) for a in AREA_IDS})


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class MirrorAPI:
    """
    Pure-Python façade over the rule layer. No HTTP required.
    Every method takes and returns JSON-ready dicts.

    Usage:
        api = MirrorAPI(config={"incident_db_path": None})
        api.classify("I want to die")
        api.resolve(text, roster=[{"id": "1", "name": "Jane Doe", "email": "..."}])
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, project_root: Optional[Path] = None):
        self.config     = config if config is not None else load_config(project_root)
        self.settings   = progress_settings(self.config)
        self.thresholds = gaming_thresholds(self.config)
        table_path      = self.config.get("week_table_path")
        self.week_table = load_week_table(Path(table_path) if table_path else None)

        db = self.config.get("incident_db_path")
        self.incident_db_path = Path(db) if db else None
        self.incident_sink    = SqliteIncidentSink(self.incident_db_path) if db else None

    # ── CRISIS ────────────────────────────────────────────────────────────

    def classify(self, text: str) -> Dict[str, Any]:
        result = screen_message(text, on_detected=self.incident_sink)
        return {**asdict(result), "response": response_for(result)}

    # ── COVERAGE ──────────────────────────────────────────────────────────

    def coverage(
        self,
        conversation: Any,
        current: Optional[Dict[str, Any]] = None,
        reflection_submitted: bool = False,
    ) -> Dict[str, Any]:
        """conversation: full text or list of {'role','content'} messages."""
        merged = merge_coverage(_coverage_from_dict(current), detect_areas(conversation))
        if reflection_submitted:
            merged = record_reflection(merged)
        return {
            "coverage":      asdict(merged),
            "addressed":     count_addressed(merged),
            "missing_areas": missing_areas(merged),
        }

    # ── GAMING ────────────────────────────────────────────────────────────

    def gaming(self, message: str, prior_messages: Optional[List[str]] = None) -> Dict[str, Any]:
        return _gaming_to_dict(score(message, prior_messages or [], self.thresholds))

    # ── DOCUMENT RESOLVER ─────────────────────────────────────────────────

    def resolve(self, text: str, roster: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        result = resolve(text, roster_from_dicts(roster or []), self.week_table)
        return {**asdict(result), "can_auto_confirm": can_auto_confirm(result)}

    # ── CHAT TURN ─────────────────────────────────────────────────────────

    def chat_turn(
        self,
        message: str,
        history: Optional[List[Dict[str, str]]] = None,
        coverage: Optional[Dict[str, Any]] = None,
        prior_flags: int = 0,
        use_model: bool = False,
        system_prompt: str = "",
    ) -> Dict[str, Any]:
        llm = None
        if use_model:
            from mirror.llm.ollama_adapter import OllamaAdapter
            llm = OllamaAdapter(
                model=self.config.get("model", "llama3.1:8b"),
                host=self.config.get("ollama_host", "http://localhost:11434"),
            )

        monitor = GamingMonitor()
        monitor.flag_count = max(int(prior_flags), 0)

        turn = run_chat_turn(
            message,
            history=history or [],
            coverage=_coverage_from_dict(coverage),
            llm=llm,
            system_prompt=system_prompt,
            incident_hook=self.incident_sink,
            monitor=monitor,
            thresholds=self.thresholds,
        )
        return {
            "is_crisis_intervention": turn.is_crisis_intervention,
            "crisis":         asdict(turn.crisis),
            "reply":          turn.reply,
            "coverage":       asdict(turn.coverage),
            "missing_areas":  turn.missing_areas,
            "gaming":         _gaming_to_dict(turn.gaming) if turn.gaming else None,
            "gaming_action":  turn.gaming_action,
            "flag_count":     monitor.flag_count,
            "detection_mode": turn.detection_mode,
            "model_used":     turn.model_used,
        }

    # ── PROGRESS ──────────────────────────────────────────────────────────

    def _load_progress(self, progress: Optional[Dict[str, Any]], student_name: str = ""):
        if not progress:
            return create_empty_progress(student_name, self.settings)
        return progress_from_dict(progress, self.settings)

    def record_exchanges(
        self,
        progress: Optional[Dict[str, Any]],
        week: int,
        exchange_count: int,
    ) -> Dict[str, Any]:
        updated = record_exchanges(
            self._load_progress(progress), week, exchange_count, settings=self.settings
        )
        return {
            "progress":   progress_to_dict(updated),
            "week_state": week_state(updated, week),
            **self._status(updated),
        }

    def _status(self, progress, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "stats": completion_stats(progress, self.settings),
            "midterm": {
                "unlocked":         is_midterm_unlocked(progress, self.settings),
                "locked_message":   locked_message(progress, "midterm", self.settings),
                "window_open":      is_within_submission_window("midterm", now, self.settings),
                "window_message":   submission_window_message("midterm", now, self.settings),
                "submitted":        progress.midterm.submitted,
            },
            "final": {
                "unlocked":         is_final_unlocked(progress, self.settings),
                "locked_message":   locked_message(progress, "final", self.settings),
                "window_open":      is_within_submission_window("final", now, self.settings),
                "window_message":   submission_window_message("final", now, self.settings),
                "submitted":        progress.final.submitted,
            },
        }

    def progress_status(self, progress: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
        return self._status(self._load_progress(progress), now)

    def submit(
        self,
        progress: Optional[Dict[str, Any]],
        kind: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Raises SubmissionBlocked (a ValueError) when locked or outside the window."""
        updated = submit_assessment(self._load_progress(progress), kind, now, self.settings)
        return {"progress": progress_to_dict(updated), **self._status(updated, now)}

    # ── INSTRUCTOR ────────────────────────────────────────────────────────

    def class_report(
        self,
        progress_records: List[Dict[str, Any]],
        through_week: Optional[int] = None,
    ) -> Dict[str, Any]:
        records = [self._load_progress(p) for p in progress_records]
        counts = incident_counts(self.incident_db_path) if self.incident_db_path else {}
        return report_to_dict(build_report(records, through_week, self.settings, counts))

    def incident_counts(self, since: Optional[str] = None) -> Dict[str, int]:
        if self.incident_db_path is None:
            return {}
        return incident_counts(self.incident_db_path, since=since)


# ═══════════════════════════════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════════════════════════════

class ClassifyRequest(BaseModel):
    text: str = ""


class CoverageRequest(BaseModel):
    messages: List[Dict[str, str]] = Field(default_factory=list)
    text: Optional[str] = None
    current: Optional[Dict[str, bool]] = None
    reflection_submitted: bool = False


class GamingRequest(BaseModel):
    message: str = ""
    prior_messages: List[str] = Field(default_factory=list)


class RosterRow(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    section: str = ""


class ResolveRequest(BaseModel):
    text: str = ""
    roster: List[RosterRow] = Field(default_factory=list)


class ChatTurnRequest(BaseModel):
    message: str
    history: List[Dict[str, str]] = Field(default_factory=list)
    coverage: Optional[Dict[str, bool]] = None
    prior_flags: int = 0
    use_model: bool = False
    system_prompt: str = ""


class ExchangeRequest(BaseModel):
    progress: Optional[Dict[str, Any]] = None
    week: int
    exchange_count: int = Field(ge=0)


class StatusRequest(BaseModel):
    progress: Optional[Dict[str, Any]] = None


class SubmitRequest(BaseModel):
    progress: Optional[Dict[str, Any]] = None
    kind: str


class ReportRequest(BaseModel):
    progress_records: List[Dict[str, Any]] = Field(default_factory=list)
    through_week: Optional[int] = None


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

def _build_app(config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Build and return the FastAPI application instance."""
    _api = MirrorAPI(config=config)

    _app = FastAPI(
        title       = "Reasoning Mirror Rule Layer",
        description = "Crisis gate, rubric coverage, gaming signal, document resolver, progress gates",
        version     = API_VERSION,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    @_app.post("/classify", summary="Crisis gate for one message")
    def classify(req: ClassifyRequest):
        return _api.classify(req.text)

    @_app.post("/coverage", summary="Rubric coverage")
    def coverage(req: CoverageRequest):
        conversation = req.text if req.text is not None else req.messages
        return _api.coverage(conversation, req.current, req.reflection_submitted)

    @_app.post("/gaming", summary="Submission-gaming signal")
    def gaming(req: GamingRequest):
        return _api.gaming(req.message, req.prior_messages)

    @_app.post("/resolve", summary="Resolve uploaded document text")
    def resolve_document(req: ResolveRequest):
        return _api.resolve(req.text, [r.model_dump() for r in req.roster])

    @_app.post("/chat/turn", summary="Run the rule layer for one chat turn")
    def chat_turn(req: ChatTurnRequest):
        return _api.chat_turn(
            req.message,
            history=req.history,
            coverage=req.coverage,
            prior_flags=req.prior_flags,
            use_model=req.use_model,
            system_prompt=req.system_prompt,
        )

    @_app.post("/progress/exchanges", summary="Record exchanges for a week")
    def progress_exchanges(req: ExchangeRequest):
        try:
            return _api.record_exchanges(req.progress, req.week, req.exchange_count)
        except (ValueError, KeyError, TypeError) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid progress record: {exc}")

    @_app.post("/progress/status", summary="Unlock and submission-window status")
    def progress_status(req: StatusRequest):
        try:
            return _api.progress_status(req.progress)
        except (ValueError, KeyError, TypeError) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid progress record: {exc}")

    @_app.post("/progress/submit", summary="Submit midterm or final")
    def progress_submit(req: SubmitRequest):
        try:
            return _api.submit(req.progress, req.kind)
        except SubmissionBlocked as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except (ValueError, KeyError, TypeError) as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @_app.post("/report", summary="Class progress summary")
    def report(req: ReportRequest):
        try:
            return _api.class_report(req.progress_records, req.through_week)
        except (ValueError, KeyError, TypeError) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid progress record: {exc}")

    @_app.get("/incidents", summary="Anonymized crisis incident counts")
    def incidents(since: Optional[str] = Query(None, description="ISO timestamp lower bound")):
        return {"counts": _api.incident_counts(since)}

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":        "ok",
            "version":       API_VERSION,
            "week_articles": len(_api.week_table.articles),
            "incident_sink": _api.incident_db_path is not None,
        }

    return _app


# Module-level app instance, used by `uvicorn mirror.api:app`
app = _build_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m mirror.api
# ═══════════════════════════════════════════════════════════════════════════

def serve(host: str = "127.0.0.1", port: int = 8766, config: Optional[Dict[str, Any]] = None) -> None:
    import uvicorn

    server_app = _build_app(config)
    logger.info(f"Reasoning Mirror API listening on http://{host}:{port}")
    uvicorn.run(server_app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        prog        = "mirror.api",
        description = "Reasoning Mirror API server",
    )
    parser.add_argument("--port", type=int, default=8766,
                        help="Port to bind (default: 8766)")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Host to bind (default: 127.0.0.1)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    serve(host=args.host, port=args.port)
