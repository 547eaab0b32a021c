"""FastAPI application for the ESG questionnaire response engine."""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Type, TypeVar

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from models import (
    ColumnMapping,
    CompanyData,
    CompanyProfile,
    DraftRequest,
    GenerationConfig,
    ProcessingStatus,
)
from services.domain_matcher import DomainMatcher
from services.emission_factors import GAS_M3_TO_KWH
from services.question_parser import SPREADSHEET_FORMATS
from services.response_engine import ResponseEngine
import config

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SUPPORTED_UPLOADS = SPREADSHEET_FORMATS | {"pdf", "docx"}

ModelT = TypeVar("ModelT", bound=BaseModel)

# Global engine
engine: ResponseEngine = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    global engine

    logger.info("Starting application...")
    engine = ResponseEngine.from_defaults()
    logger.info(
        f"Engine ready: {engine.matcher.rule_count} mapping rules, {len(engine.metric_keys)} metric keys, "
        f"{engine.max_workers} worker(s)"
    )

    yield

    logger.info("Application shutting down...")


app = FastAPI(
    title="ESG Questionnaire Response Engine",
    description="API for drafting sustainability questionnaire answers from company data",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def require_engine() -> ResponseEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Response engine not loaded")
    return engine


def check_upload(file: UploadFile):
    ext = (file.filename or "").rsplit(".", 1)[-1].lower() if "." in (file.filename or "") else ""
    if ext == "doc":
        raise HTTPException(status_code=400, detail="Legacy .doc format is not supported. Please save as .docx.")
    if ext not in SUPPORTED_UPLOADS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file format. Please upload an Excel (.xlsx, .xls), CSV, PDF, or Word (.docx) file."
        )


async def read_upload(file: UploadFile) -> bytes:
    try:
        return await file.read()
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Error reading file: {str(e)}")


def parse_form_model(raw: Optional[str], model: Type[ModelT], field: str) -> Optional[ModelT]:
    """Validate a JSON-encoded multipart form field."""
    if not raw:
        return None
    try:
        return model.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid {field}: {str(e)}")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "engine_loaded": engine is not None,
        "mapping_rules": engine.matcher.rule_count if engine else 0,
        "llm_enabled": False,
    }


@app.get("/api/v1/rules/stats")
async def rules_stats():
    """Get statistics about the loaded rule tables."""
    current = require_engine()

    units = {}
    for key in current.metric_keys:
        units[key.unit or "none"] = units.get(key.unit or "none", 0) + 1

    return {
        "mapping_rules": current.matcher.rule_count,
        "keyword_rules": len(current.matcher.keyword_rules),
        "classifier_rules": len(current.classifier.rules),
        "metric_keys": len(current.metric_keys),
        "metric_keys_by_unit": units,
        "emission_factor_countries": len(current.retriever.calculator.supported_countries),
    }


@app.get("/api/v1/emission-factors/{country}")
async def emission_factor(country: str):
    """Grid electricity factor for a country, falling back to the global average."""
    factor = require_engine().retriever.calculator.electricity_factor(country)
    return {
        "country": country,
        "factor_tco2e_per_kwh": factor.factor,
        "is_default": factor.is_default,
        "source": factor.source,
        "gas_m3_to_kwh": GAS_M3_TO_KWH,
    }


@app.post("/api/v1/questionnaire/parse")
async def parse_questionnaire(file: UploadFile = File(...)):
    """Parse an uploaded questionnaire. Parse failures are returned with success=false."""
    current = require_engine()
    check_upload(file)
    file_content = await read_upload(file)

    result = current.parser.parse(file_content, file.filename)
    return JSONResponse(result.model_dump(mode="json"))


@app.post("/api/v1/questionnaire/parse-with-mapping")
async def parse_with_mapping(file: UploadFile = File(...), mapping: str = Form(...)):
    """Re-parse a spreadsheet using a manual column mapping (JSON form field)."""
    current = require_engine()
    check_upload(file)
    column_mapping = parse_form_model(mapping, ColumnMapping, "mapping")
    if column_mapping is None or not column_mapping.question_text:
        raise HTTPException(status_code=400, detail="Mapping must name the question column")
    file_content = await read_upload(file)

    result = current.parser.reprocess_with_mapping(file_content, file.filename, column_mapping)
    return JSONResponse(result.model_dump(mode="json"))


@app.post("/api/v1/questionnaire/draft")
async def draft_answers(request: DraftRequest):
    """Draft answers for already-parsed questions."""
    current = require_engine()

    drafts = current.draft(request.questions, request.company_data, request.profile, request.config)
    matches = [d.match_result for d in drafts]

    return JSONResponse({
        "total_questions": len(drafts),
        "drafts": [d.model_dump(mode="json") for d in drafts],
        "summary": current.summarize(drafts),
        "match_statistics": DomainMatcher.statistics(matches),
        "question_types": {
            t.lower(): sum(1 for d in drafts if d.question_type == t) for t in ("POLICY", "MEASURE", "KPI")
        },
    })


async def generate_streaming_response(
    file_content: bytes,
    filename: str,
    company_data: CompanyData,
    profile: Optional[CompanyProfile],
    generation_config: GenerationConfig
) -> AsyncGenerator[str, None]:
    """Generate streaming response with progress updates and the drafted answers."""

    def status_line(state: str, progress: int, message: str, output_filename: str = None) -> str:
        status = ProcessingStatus(
            state=state,
            progress=progress,
            message=message,
            output_filename=output_filename
        )
        return json.dumps(status.model_dump(exclude_none=True)) + "\n"

    try:
        # Step 1: Parse input file
        yield status_line("processing", 10, "Parsing input file...")

        result = engine.parser.parse(file_content, filename)
        if not result.success:
            yield status_line("error", 0, f"Error parsing file: {'; '.join(result.errors)}")
            return

        questions = result.questions
        framework = result.metadata.detected_framework
        yield status_line(
            "processing", 20,
            f"Found {len(questions)} questions to process" + (f" ({framework})" if framework else "")
        )

        # Step 2: Draft answers in batches so progress can be reported
        drafts = []
        batch_size = max(engine.max_workers, 1) * 5
        for start in range(0, len(questions), batch_size):
            batch = questions[start:start + batch_size]
            progress = 20 + int((start / len(questions)) * 70)
            yield status_line(
                "processing", progress,
                f"Drafting answers {start + 1}-{start + len(batch)}/{len(questions)}..."
            )
            drafts.extend(engine.draft(batch, company_data, profile, generation_config))

        summary = engine.summarize(drafts)
        output_filename = filename.rsplit(".", 1)[0] + "_drafts.json"

        yield status_line(
            "ready",
            100,
            f"Ready. Provided: {summary['provided']}, Estimated: {summary['estimated']}, "
            f"Unknown: {summary['unknown']}, Needs review: {summary['needs_review']}",
            output_filename
        )

        # Output the drafts after delimiter
        yield "---JSON---\n"
        yield json.dumps({
            "parse": result.metadata.model_dump(mode="json"),
            "drafts": [d.model_dump(mode="json") for d in drafts],
            "summary": summary,
        })

    except Exception as e:
        logger.error(f"Error processing file: {e}", exc_info=True)
        yield status_line("error", 0, f"Error processing file: {str(e)}")


@app.post("/api/v1/questionnaire/fill")
async def fill_questionnaire(
    file: UploadFile = File(...),
    company_data: Optional[str] = Form(None),
    profile: Optional[str] = Form(None),
    generation_config: Optional[str] = Form(None, alias="config")
):
    """
    Parse a questionnaire and draft answers from the supplied company data.

    Returns a streaming response with:
    - JSON status lines showing progress
    - Delimiter: ---JSON---
    - JSON payload with parse metadata, drafts and summary
    """
    require_engine()
    check_upload(file)
    data = parse_form_model(company_data, CompanyData, "company_data") or CompanyData()
    company_profile = parse_form_model(profile, CompanyProfile, "profile")
    gen_config = parse_form_model(generation_config, GenerationConfig, "config") or GenerationConfig()
    file_content = await read_upload(file)

    return StreamingResponse(
        generate_streaming_response(file_content, file.filename, data, company_profile, gen_config),
        media_type="text/plain",
        headers={
            "X-Content-Type-Options": "nosniff",
            "Cache-Control": "no-cache"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
