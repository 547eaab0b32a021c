"""Configuration settings for the ESG questionnaire response engine."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base paths
DATA_DIR = Path(__file__).parent / "services" / "data"

# Rule tables loaded once at startup
MAPPING_RULES_FILE = Path(os.getenv("MAPPING_RULES_FILE", DATA_DIR / "question_mapping.csv"))
METRIC_KEYS_FILE = Path(os.getenv("METRIC_KEYS_FILE", DATA_DIR / "metric_keys.csv"))
INDUSTRY_KNOWLEDGE_FILE = DATA_DIR / "industry_knowledge.json"

# Question parsing
CSV_ENCODINGS = ["utf-8", "latin-1", "cp1252"]
QUESTION_MIN_LENGTH = 10
QUESTION_MAX_LENGTH = 500
SECTION_HEADER_MAX_LENGTH = 80
COLUMN_SAMPLE_ROWS = 10
COLUMN_MIN_SCORE = 40
QUESTION_MARK_WEIGHT = 300
ACTION_WORD_WEIGHT = 200
MAX_EXPECTED_QUESTIONS = 100  # above this the extraction is flagged for review

# Domain matching thresholds (summed keyword weights)
MATCH_HIGH_SCORE = 15
MATCH_MEDIUM_SCORE = 8
MAX_SECONDARY_DOMAINS = 3
SUGGESTIONS_PER_DOMAIN = 3
MAX_SUGGESTED_DATA_POINTS = 6

# Answer generation
MAX_FALLBACK_STATEMENTS = 5
DEFAULT_REPORTING_YEAR = "2024"
UNKNOWN_ANSWER = "Unknown — input required."
DEFAULT_VERBOSITY = os.getenv("DEFAULT_VERBOSITY", "standard")

# Server settings
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Question-level parallelism for batch drafting (1 = sequential)
MAX_WORKERS = int(os.getenv("MAX_WORKERS", 1))

# Accepted for API compatibility; drafting is template-based only
USE_LLM = os.getenv("USE_LLM", "false").lower() == "true"
