"""FastAPI web adapter for the pipeline simulator."""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from typing import Optional
from collections import OrderedDict
from pathlib import Path
import logging
import sys
import os
import uuid

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pipesim import RunOptions, SimulationOptions, SimulationSession, run_program
from pipesim.isa import NUM_REGISTERS
from pipesim.samples import SAMPLE_PROGRAMS, get_sample


logger = logging.getLogger(__name__)

# Constants
MAX_PROGRAM_SIZE = 50 * 1024  # 50KB
MAX_SESSIONS = 100
DEFAULT_MAX_HISTORY = 1000
STATIC_DIR = Path(__file__).parent.parent / "static"


# Request/Response models
class RunOptionsModel(BaseModel):
    memory_size: int = Field(default=1024, ge=1, le=65536)
    max_cycles: int = Field(default=10000, ge=1, le=1000000)
    trace: bool = True
    initial_registers: dict[str, int] = Field(default_factory=dict)
    initial_memory: dict[str, int] = Field(default_factory=dict)


class RunRequest(BaseModel):
    program: str
    options: Optional[RunOptionsModel] = None


class RunResponse(BaseModel):
    status: str
    cycles: int
    final_snapshot: dict
    trace: list[dict]
    parse_errors: list[dict]
    error: Optional[dict] = None


class SessionRequest(BaseModel):
    program: Optional[str] = None
    sample: Optional[str] = None
    memory_size: int = Field(default=1024, ge=1, le=65536)
    max_history: int = Field(default=DEFAULT_MAX_HISTORY, ge=1, le=100000)


class SessionResponse(BaseModel):
    session_id: str
    history_depth: int
    snapshot: dict


# Create FastAPI app
app = FastAPI(
    title="Pipeline Simulator",
    description="Web API for stepping a five-stage instruction pipeline",
    version="0.1.0",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One engine per session, oldest evicted past MAX_SESSIONS; requests for a
# session are expected to be serialized
_sessions: OrderedDict[str, SimulationSession] = OrderedDict()


def _check_program_size(program: str) -> None:
    if len(program) > MAX_PROGRAM_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"Program size exceeds limit of {MAX_PROGRAM_SIZE} bytes",
        )


def _int_keys(values: dict[str, int], what: str, limit: Optional[int] = None) -> dict[int, int]:
    """Convert JSON object keys from string to int, optionally bounded to [0, limit)."""
    converted = {}
    for k, v in values.items():
        try:
            key = int(k)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid {what} key: {k}",
            )
        if limit is not None and not 0 <= key < limit:
            raise HTTPException(
                status_code=400,
                detail=f"{what.capitalize()} key out of range 0..{limit - 1}: {k}",
            )
        converted[key] = v
    return converted


def _get_session(session_id: str) -> SimulationSession:
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def _session_response(session_id: str, session: SimulationSession) -> dict:
    return {
        "session_id": session_id,
        "history_depth": session.history_depth,
        "snapshot": session.snapshot.to_dict(),
    }


@app.post("/api/run", response_model=RunResponse)
async def run_code(request: RunRequest):
    """Assemble a program and run it until the pipeline drains.

    Args:
        request: Program code and execution options

    Returns:
        Execution result with the final snapshot and per-cycle trace
    """
    _check_program_size(request.program)

    opts = request.options or RunOptionsModel()
    run_opts = RunOptions(
        memory_size=opts.memory_size,
        max_cycles=opts.max_cycles,
        trace=opts.trace,
        initial_registers=_int_keys(opts.initial_registers, "register", NUM_REGISTERS),
        initial_memory=_int_keys(opts.initial_memory, "memory address"),
    )

    result = run_program(request.program, options=run_opts)
    return result.to_dict()


@app.get("/api/samples")
async def list_samples():
    return [sample.to_dict() for sample in SAMPLE_PROGRAMS]


@app.post("/api/sessions", response_model=SessionResponse)
async def create_session(request: SessionRequest):
    """Create a stepping session from program text or a named sample."""
    session = SimulationSession(
        options=SimulationOptions(memory_size=request.memory_size),
        max_history=request.max_history,
    )
    if request.sample is not None:
        try:
            sample = get_sample(request.sample)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown sample: {request.sample}")
        result = session.load_sample(sample)
    elif request.program is not None:
        _check_program_size(request.program)
        result = session.load_source(request.program)
    else:
        raise HTTPException(status_code=400, detail="Either program or sample is required")

    if not result.ok:
        raise HTTPException(
            status_code=400,
            detail={"parse_errors": [error.to_dict() for error in result.errors]},
        )

    session_id = uuid.uuid4().hex
    _sessions[session_id] = session
    while len(_sessions) > MAX_SESSIONS:
        evicted, _ = _sessions.popitem(last=False)
        logger.info("Evicted session %s (limit %d)", evicted, MAX_SESSIONS)
    logger.info("Created session %s (%d instructions)", session_id, len(result.instructions))
    return _session_response(session_id, session)


@app.get("/api/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return _session_response(session_id, _get_session(session_id))


@app.post("/api/sessions/{session_id}/step", response_model=SessionResponse)
async def step_session(session_id: str):
    session = _get_session(session_id)
    session.step()
    return _session_response(session_id, session)


@app.post("/api/sessions/{session_id}/step-back", response_model=SessionResponse)
async def step_back_session(session_id: str):
    session = _get_session(session_id)
    if session.step_back() is None:
        raise HTTPException(status_code=409, detail="No history to step back to")
    return _session_response(session_id, session)


@app.post("/api/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset_session(session_id: str):
    session = _get_session(session_id)
    session.reset()
    return _session_response(session_id, session)


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    _get_session(session_id)
    del _sessions[session_id]
    return {"deleted": session_id}


# Mount static files AFTER API routes to prevent shadowing
if STATIC_DIR.exists():
    app.mount("/", StaticFiles(directory=str(STATIC_DIR), html=True), name="static")


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8080)
