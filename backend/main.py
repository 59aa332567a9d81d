"""Main entry point for the DocQA retrieval pipeline API."""
import logging
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from config import PORT, CORS_ORIGINS, LOG_LEVEL, LOG_FORMAT
from errors import RAGError, ValidationError, ProviderError, StoreError, PipelineError
from logger import setup_logging
from models.api import IngestRequest, QueryRequest, QueryResponse, StatsResponse
from models.chunk import RetrievalOptions
from services.rag_pipeline import RAGPipeline

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="DocQA Retrieval Pipeline",
    description="Document question answering with chunking, vector search, reranking and cited answers",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialized on startup
rag_pipeline: RAGPipeline = None

ERROR_STATUS = {
    ValidationError: 400,
    ProviderError: 503,
    StoreError: 502,
    PipelineError: 500,
}


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global rag_pipeline

    setup_logging(LOG_LEVEL, json_format=LOG_FORMAT == "json")
    logger.info("Initializing DocQA pipeline services...")

    try:
        rag_pipeline = RAGPipeline.from_config()
        warmed = await rag_pipeline.embedding_model.warmup()
        logger.info(f"All services initialized successfully (embedding provider warm: {warmed})")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


def _http_error(e: Exception) -> HTTPException:
    """Translate a pipeline failure into an HTTP error with a structured body."""
    if isinstance(e, RAGError):
        status_code = ERROR_STATUS.get(type(e), 500)
        logger.error(f"{type(e).__name__} ({e.error.code}): {e.error.message}")
        return HTTPException(
            status_code=status_code,
            detail={
                "error": {
                    "code": e.error.code,
                    "message": e.error.message,
                    "details": e.error.details
                }
            }
        )

    logger.error(f"Unexpected error: {e}", exc_info=True)
    return HTTPException(
        status_code=500,
        detail={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": f"Internal server error: {str(e)}",
                "details": {}
            }
        }
    )


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "DocQA Retrieval Pipeline API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "docqa-retrieval-pipeline",
        "version": "1.0.0"
    }


@app.post("/documents/upload")
async def upload_document(request: IngestRequest):
    """Ingest a raw text document."""
    try:
        document = await rag_pipeline.ingest_text(
            request.text,
            request.title,
            source=request.source or "upload"
        )
    except Exception as e:
        raise _http_error(e)

    return {"success": True, "document": document.to_dict()}


@app.post("/documents/upload-file")
async def upload_file(file: UploadFile = File(...)):
    """Ingest an uploaded .txt, .md, .csv or .pdf file."""
    try:
        data = await file.read()
        document = await rag_pipeline.ingest_file(file.filename or "", data)
    except Exception as e:
        raise _http_error(e)

    return {"success": True, "document": document.to_dict()}


@app.delete("/documents/{document_id}")
async def delete_document(document_id: str):
    """Delete every chunk stored for a document."""
    try:
        deleted = await rag_pipeline.delete_document(document_id)
    except Exception as e:
        raise _http_error(e)

    return {"success": True, "deleted": deleted}


@app.post("/query", response_model=QueryResponse)
async def query_endpoint(request: QueryRequest) -> QueryResponse:
    """
    Answer a question from the ingested documents.

    Embeds the question, searches the vector store, optionally reranks,
    and generates a cited answer. No matching chunks is not an error: the
    response carries a fixed no-context answer with zero tokens and cost.

    Raises:
        HTTPException: 400 for validation errors, 503 for provider
            failures, 502 for vector store failures, 500 otherwise
    """
    options = None
    if request.options is not None:
        options = RetrievalOptions(
            top_k=request.options.top_k,
            rerank_top_k=request.options.rerank_top_k,
            use_reranking=request.options.use_reranking
        )

    try:
        result = await rag_pipeline.answer(request.query, options)
    except Exception as e:
        raise _http_error(e)

    return QueryResponse(success=True, **result.to_dict())


@app.get("/stats", response_model=StatsResponse)
async def stats_endpoint() -> StatsResponse:
    """Vector store statistics."""
    try:
        stats = await rag_pipeline.get_stats()
    except Exception as e:
        raise _http_error(e)

    return StatsResponse(success=True, stats=stats)


if __name__ == "__main__":
    import uvicorn
    setup_logging(LOG_LEVEL, json_format=LOG_FORMAT == "json")
    logger.info(f"Starting DocQA Retrieval Pipeline API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
