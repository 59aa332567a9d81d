"""Configuration management for the DocQA retrieval pipeline."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
COHERE_API_KEY = os.getenv("COHERE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))
EMBEDDING_API_URL = os.getenv(
    "EMBEDDING_API_URL",
    f"https://router.huggingface.co/hf-inference/models/{EMBEDDING_MODEL}/pipeline/feature-extraction"
)
# Ingestion tolerates a sleeping model; queries fall back to local hashing sooner
EMBEDDING_MAX_RETRIES = 5
EMBEDDING_TIMEOUT = 120.0  # seconds
QUERY_EMBEDDING_MAX_RETRIES = 2
QUERY_EMBEDDING_TIMEOUT = 15.0  # seconds
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "llama-3.1-8b-instant")
RERANK_MODEL = os.getenv("RERANK_MODEL", "rerank-english-v3.0")
RERANK_API_URL = os.getenv("RERANK_API_URL", "https://api.cohere.com/v2/rerank")
RERANK_STRATEGY = os.getenv("RERANK_STRATEGY", "auto")  # auto | cohere | keyword | mmr

# Chunking Configuration
CHUNK_SIZE = 1000  # tokens
CHUNK_OVERLAP = 150  # tokens (15%)
TOKENIZER_ENCODING = "cl100k_base"

# Retrieval Configuration
TOP_K = 20
RERANK_TOP_K = 5
USE_RERANKING = os.getenv("USE_RERANKING", "true").lower() in ("1", "true", "yes")
MMR_LAMBDA = float(os.getenv("MMR_LAMBDA", "0.7"))  # 1.0 = pure relevance, 0.0 = pure diversity
MMR_MAX_RESULTS = 10

# Vector Store Configuration
VECTOR_TABLE = os.getenv("VECTOR_TABLE", "document_chunks")
UPSERT_BATCH_SIZE = 100

# Upload limits
MAX_FILE_SIZE_MB = 10
