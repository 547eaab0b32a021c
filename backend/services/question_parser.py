"""Questionnaire parsing for spreadsheets, CSV, PDF and Word documents."""

import io
import logging
import re
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import fitz  # PyMuPDF
import pandas as pd
from docx import Document as DocxDocument

import config
from models import ColumnMapping, DetectionConfidence, ParsedQuestion, ParseMetadata, ParseResult

logger = logging.getLogger(__name__)

# Header synonyms per question field, checked in this order
COLUMN_PATTERNS: Dict[str, List[str]] = {
    "question_text": [
        "question", "questions", "query", "text", "description",
        "indicator", "metric", "requirement", "disclosure",
        "question text", "question_text", "questiontext",
        "ask", "item", "criteria", "criterion",
    ],
    "category": [
        "category", "topic", "theme", "section", "pillar",
        "area", "domain", "group", "type", "classification",
    ],
    "subcategory": [
        "subcategory", "sub-category", "sub_category", "subtopic",
        "sub-topic", "sub_topic", "subsection", "sub-section",
    ],
    "reference_id": [
        "id", "ref", "reference", "code", "number", "ref_id",
        "question_id", "indicator_id", "disclosure_id",
        "gri", "esrs", "sasb", "cdp",
    ],
    "required": ["required", "mandatory", "optional", "must", "shall"],
}

# First framework whose signature appears anywhere wins
FRAMEWORK_PATTERNS: Dict[str, List[re.Pattern]] = {
    "CSRD": [re.compile(p, re.IGNORECASE) for p in (r"\bcsrd\b", r"\besrs\b", r"\b[esg]1\.\d")],
    "GRI": [re.compile(p, re.IGNORECASE) for p in (r"\bgri\s?\d{3}", r"\bgri-")],
    "CDP": [re.compile(p, re.IGNORECASE) for p in (r"\bcdp\b", r"\bc\d+\.\d+")],
    "EcoVadis": [re.compile(p, re.IGNORECASE) for p in (r"\becovadis\b", r"\bev-")],
    "SASB": [re.compile(r"\bsasb\b", re.IGNORECASE)],
    "TCFD": [re.compile(r"\btcfd\b", re.IGNORECASE)],
    "UN_SDG": [re.compile(p, re.IGNORECASE) for p in (r"\bsdgs?\b", r"\bun sdg\b")],
}

# Content that is clearly not a question
SKIP_PATTERNS: List[re.Pattern] = [re.compile(p, re.IGNORECASE) for p in (
    r"^(copyright|confidential|disclaimer|version\s*[\d.]|page\s*\d|©)",
    r"^\d+$",
    r"^[\d.\-/\s,()%]+$",
    r"^(yes|no|true|false|x|n/a)$",
    r"^(guidance|note[s:\s]|instructions?[\s:]|tip[\s:]|example[\s:]|please note|see also|refer to|for more"
    r"|this question|you should|if you|the purpose|this section|in this|further guidance|additional info)",
    r"^(select from|select one|select all that|choose one|choose from|click|enter a|type your|dropdown"
    r"|response option|please select|upload your|attach your|free text|open.?ended)",
    r"^(total|subtotal|n/a|none|not applicable|other \(specify\)|grand total|all of the above|not yet"
    r"|no change|same as|see above)",
    r"^(column|row|field|header|label|unit|format|data type|response type|answer type|scoring|weight|points)",
    r"^[☐☑✓✗✘●○■□▪▫►▶]\s",
)]

INTERROGATIVE_START = re.compile(
    r"^(what|how|does|do|is|are|has|have|which|who|where|when|why|can|will|would|should|could|may|might|shall)\b",
    re.IGNORECASE,
)
IMPERATIVE_START = re.compile(
    r"^(describe|explain|provide|list|report|disclose|specify|identify|outline|quantify|assess|evaluate"
    r"|discuss|summarize|summarise)\b",
    re.IGNORECASE,
)
# In CDP-style numbered items these verbs are question stems too
STRUCTURED_IMPERATIVE = re.compile(
    r"^(describe|explain|provide|list|report|disclose|specify|identify|outline|quantify|assess|evaluate"
    r"|discuss|summarize|summarise|select|indicate|state|confirm)\b",
    re.IGNORECASE,
)
REFERENCE_ID = re.compile(
    r"^(C\d+[.\-]\d|E\d[.\-]|S\d[.\-]|G\d[.\-]|GRI\s*\d{3}|ESRS\s*[ESGO]\d|SASB|Q\d{1,3}[.\-])",
    re.IGNORECASE,
)
ENDS_WITH_QUESTION = re.compile(r"\?\s*[)\"\u201D]?\s*$")
STRUCTURED_NUMBERING = re.compile(r"^\(\d+(?:\.\d+)+\)\s+")
LEADING_NUMBERING = re.compile(r"^(?:\d+[.)]|Q\d+)", re.IGNORECASE)
TOC_LINE = re.compile(r"\.{4,}\s*\d*\s*$")
STRIP_STRUCTURED = re.compile(r"^\(\d+(?:\.\d+)*\)\s*")
STRIP_NUMBERING = re.compile(r"^(?:Q?\d+[.):]?\s*)", re.IGNORECASE)

SKIP_SHEET_PATTERN = re.compile(
    r"^(intro|guidance|instruction|definition|dropdown|option|admin|validation|response.?status|summary|about"
    r"|help|readme|cover|glossary|reference|changelog|version|menu|list|lookup|data.?valid|mapping|config"
    r"|translation|language)",
    re.IGNORECASE,
)

REQUIRED_TRUE = {"yes", "y", "true", "1", "required", "mandatory"}
REQUIRED_FALSE = {"no", "n", "false", "0", "optional"}

SPREADSHEET_FORMATS = {"csv", "xlsx", "xls"}


def is_question_row(text: str) -> bool:
    """Negative filters only: length bounds and known non-question content."""
    if len(text) < config.QUESTION_MIN_LENGTH:
        return bool(ENDS_WITH_QUESTION.search(text))
    if len(text) > config.QUESTION_MAX_LENGTH:
        return False
    return not any(p.search(text) for p in SKIP_PATTERNS)


def looks_like_question(text: str) -> bool:
    """Free-text lines also need a positive signal: '?', an interrogative or imperative start, or a reference id."""
    if len(text) < config.QUESTION_MIN_LENGTH:
        return bool(ENDS_WITH_QUESTION.search(text))
    if not is_question_row(text):
        return False
    if text[0].islower():
        return False
    return bool(
        ENDS_WITH_QUESTION.search(text)
        or INTERROGATIVE_START.match(text)
        or IMPERATIVE_START.match(text)
        or REFERENCE_ID.match(text)
    )


def parse_required(value) -> Optional[bool]:
    text = str(value or "").strip().lower()
    if text in REQUIRED_TRUE:
        return True
    if text in REQUIRED_FALSE:
        return False
    return None


def normalize_question(text: str) -> str:
    return re.sub(r"\s+", " ", text.strip().lower())


def dedupe_questions(questions: List[ParsedQuestion]) -> List[ParsedQuestion]:
    seen = set()
    unique = []
    for q in questions:
        key = normalize_question(q.text)
        if key not in seen:
            seen.add(key)
            unique.append(q)
    return unique


def detect_framework(questions: List[ParsedQuestion]) -> Optional[str]:
    all_text = " ".join(f"{q.text} {q.category or ''} {q.reference_id or ''}" for q in questions)
    for framework, patterns in FRAMEWORK_PATTERNS.items():
        if any(p.search(all_text) for p in patterns):
            return framework
    return None


def tag_framework(questions: List[ParsedQuestion]) -> Tuple[List[ParsedQuestion], Optional[str]]:
    """Tag every question with the detected framework (questions are frozen, so copies are returned)."""
    framework = detect_framework(questions)
    if framework:
        questions = [q.model_copy(update={"framework": framework}) for q in questions]
    return questions, framework


def _failure(file_name: str, message: str, mapping: Optional[ColumnMapping] = None) -> ParseResult:
    return ParseResult(
        success=False,
        errors=[message],
        metadata=ParseMetadata(file_name=file_name, column_mapping=mapping or ColumnMapping()),
    )


def _extension(file_name: str) -> str:
    return Path(file_name).suffix.lower().lstrip(".")


class QuestionParser:
    """Turns an uploaded questionnaire into an ordered list of ParsedQuestion.

    `parse` never raises: failures come back as ParseResult(success=False).
    """

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def parse(self, file_content: bytes, filename: str) -> ParseResult:
        ext = _extension(filename)
        try:
            if ext in SPREADSHEET_FORMATS:
                return self._parse_spreadsheet(file_content, filename)
            if ext == "pdf":
                return self._parse_pdf(file_content, filename)
            if ext == "docx":
                return self._parse_docx(file_content, filename)
        except Exception as e:
            logger.error(f"Failed to parse {filename}: {e}", exc_info=True)
            label = {"pdf": "PDF", "docx": "Word document"}.get(ext, "file")
            return _failure(filename, f"Failed to parse {label}: {e}")

        if ext == "doc":
            return _failure(filename, "Legacy .doc format is not supported. Please save the file as .docx and try again.")
        logger.warning(f"Unsupported upload format: .{ext}")
        return _failure(
            filename,
            f"Unsupported file format: .{ext}. Please upload an Excel (.xlsx), CSV, PDF, or Word (.docx) file.",
        )

    def reprocess_with_mapping(self, file_content: bytes, filename: str, mapping: ColumnMapping) -> ParseResult:
        """Re-parse a spreadsheet with a caller-supplied column mapping; no sheets are skipped."""
        try:
            sheets = self._read_sheets(file_content, filename)
            questions: List[ParsedQuestion] = []
            total_rows = 0
            for sheet_name, df in sheets.items():
                if df.empty:
                    continue
                total_rows += len(df)
                label = sheet_name if len(sheets) > 1 else None
                questions.extend(self._parse_rows(df, mapping, label))
        except Exception as e:
            logger.error(f"Failed to reprocess {filename}: {e}", exc_info=True)
            return _failure(filename, str(e), mapping)

        questions, framework = tag_framework(questions)
        logger.info(f"Reprocessed {filename} with column '{mapping.question_text}': {len(questions)} questions")
        return ParseResult(
            success=bool(questions),
            questions=questions,
            errors=[] if questions else ["No questions found with the selected column mapping."],
            metadata=ParseMetadata(
                file_name=filename,
                total_rows=total_rows,
                parsed_rows=len(questions),
                detected_framework=framework,
                column_mapping=mapping,
            ),
        )

    def parse_text(self, text: str) -> List[ParsedQuestion]:
        """One question per non-blank line, without filtering."""
        lines = [line for line in text.split("\n") if line.strip()]
        return [
            ParsedQuestion(id=str(uuid.uuid4()), row_index=i + 1, text=line.strip(), raw_row={"text": line})
            for i, line in enumerate(lines)
        ]

    # ------------------------------------------------------------------
    # Spreadsheets
    # ------------------------------------------------------------------

    def _read_sheets(self, file_content: bytes, filename: str) -> Dict[str, pd.DataFrame]:
        if _extension(filename) == "csv":
            return {"Sheet1": self._read_csv(file_content)}
        sheets = pd.read_excel(io.BytesIO(file_content), sheet_name=None, dtype=str)
        return {str(name): df.fillna("") for name, df in sheets.items()}

    def _read_csv(self, file_content: bytes) -> pd.DataFrame:
        for encoding in config.CSV_ENCODINGS:
            try:
                df = pd.read_csv(
                    io.BytesIO(file_content), encoding=encoding, dtype=str,
                    keep_default_na=False, on_bad_lines="skip",
                )
                return df
            except UnicodeDecodeError:
                logger.debug(f"CSV is not {encoding}, trying next encoding")
                continue
        raise ValueError("Could not parse the CSV file with any supported encoding")

    def _parse_spreadsheet(self, file_content: bytes, filename: str) -> ParseResult:
        sheets = self._read_sheets(file_content, filename)
        if not sheets:
            return _failure(filename, "No sheets found in file")

        questions: List[ParsedQuestion] = []
        primary_mapping = ColumnMapping()
        available_columns: List[str] = []
        total_rows = 0
        multi_sheet = len(sheets) > 1

        for sheet_name, df in sheets.items():
            if multi_sheet and SKIP_SHEET_PATTERN.match(sheet_name.strip()):
                logger.info(f"Skipping auxiliary sheet '{sheet_name}'")
                continue
            if df.empty:
                continue

            headers = [str(c) for c in df.columns]
            df.columns = headers
            if not available_columns:
                available_columns = headers

            mapping = self.detect_column_mapping(headers, df.head(config.COLUMN_SAMPLE_ROWS))
            if not primary_mapping.question_text and mapping.question_text:
                primary_mapping = mapping
            if not mapping.question_text:
                continue

            logger.info(f"Sheet '{sheet_name}': detected question column '{mapping.question_text}'")
            total_rows += len(df)
            questions.extend(self._parse_rows(df, mapping, sheet_name if multi_sheet else None))

        questions = dedupe_questions(questions)
        errors: List[str] = []

        confidence: DetectionConfidence = "high"
        if not questions:
            confidence = "low"
        elif total_rows > 0 and len(questions) / total_rows < 0.5:
            confidence = "medium"
        if len(questions) > config.MAX_EXPECTED_QUESTIONS:
            logger.warning(f"Extracted {len(questions)} questions from {filename}, flagging for review")
            errors.append(
                f"Extracted {len(questions)} questions, which seems high. Review the results and consider "
                "using manual column mapping if needed."
            )
            confidence = "low"

        metadata = ParseMetadata(
            file_name=filename,
            total_rows=total_rows,
            parsed_rows=len(questions),
            column_mapping=primary_mapping,
            available_columns=available_columns,
            auto_detection_confidence=confidence,
            sheets_processed=len(sheets),
        )
        if not questions:
            return ParseResult(
                success=False,
                errors=['Could not identify question column. Try renaming the header to "Question" '
                        "or use manual column mapping."],
                metadata=metadata,
            )

        questions, framework = tag_framework(questions)
        metadata.detected_framework = framework
        logger.info(f"Parsed {len(questions)} questions from {filename} (framework: {framework or 'none'})")
        return ParseResult(success=True, questions=questions, errors=errors, metadata=metadata)

    def detect_column_mapping(self, headers: List[str], sample: Optional[pd.DataFrame] = None) -> ColumnMapping:
        """Map headers to question fields by synonym, scoring columns when no question header exists."""
        normalized = [h.lower().strip() for h in headers]
        found: Dict[str, str] = {}
        used = set()

        for field, patterns in COLUMN_PATTERNS.items():
            # Exact header names first, then containment
            for matcher in (lambda h: h in patterns, lambda h: any(p in h for p in patterns)):
                for i, header in enumerate(normalized):
                    if i not in used and matcher(header):
                        found[field] = headers[i]
                        used.add(i)
                        break
                if field in found:
                    break

        if "question_text" not in found and sample is not None and not sample.empty:
            best = self._score_columns(headers, sample)
            if best:
                found["question_text"] = best

        if "question_text" not in found and headers:
            found["question_text"] = headers[0]
        return ColumnMapping(**found)

    @staticmethod
    def _score_columns(headers: List[str], sample: pd.DataFrame) -> Optional[str]:
        best_col, best_score = None, 0.0
        for header in headers:
            values = [v for v in sample[header].astype(str).str.strip() if v]
            if not values:
                continue
            avg_len = sum(len(v) for v in values) / len(values)
            question_rate = sum(1 for v in values if "?" in v) / len(values)
            action_rate = sum(1 for v in values if INTERROGATIVE_START.match(v) or IMPERATIVE_START.match(v)) / len(values)
            # Very long cells are usually guidance text
            length_factor = avg_len * 0.1 if avg_len > 300 else avg_len * 0.3
            score = length_factor + question_rate * config.QUESTION_MARK_WEIGHT + action_rate * config.ACTION_WORD_WEIGHT
            if score > best_score:
                best_col, best_score = header, score
        return best_col if best_score > config.COLUMN_MIN_SCORE else None

    def _parse_rows(self, df: pd.DataFrame, mapping: ColumnMapping, sheet_label: Optional[str]) -> List[ParsedQuestion]:
        questions = []
        for i, row in enumerate(df.to_dict(orient="records")):
            text = self._cell(row, mapping.question_text)
            if not text or not is_question_row(text):
                continue
            questions.append(ParsedQuestion(
                id=str(uuid.uuid4()),
                row_index=i + 2,  # header is row 1
                text=text,
                category=self._cell(row, mapping.category) or sheet_label,
                subcategory=self._cell(row, mapping.subcategory),
                reference_id=self._cell(row, mapping.reference_id),
                required=parse_required(row.get(mapping.required)) if mapping.required else None,
                raw_row=row,
            ))
        return questions

    @staticmethod
    def _cell(row: Dict, column: Optional[str]) -> Optional[str]:
        if not column:
            return None
        value = row.get(column)
        if value is None or pd.isna(value):
            return None
        return str(value).strip() or None

    # ------------------------------------------------------------------
    # Free text (PDF / Word)
    # ------------------------------------------------------------------

    def _parse_pdf(self, file_content: bytes, filename: str) -> ParseResult:
        with fitz.open(stream=file_content, filetype="pdf") as doc:
            pages = [page.get_text("text") or "" for page in doc]
        return self.questions_from_text("\n".join(pages), filename)

    def _parse_docx(self, file_content: bytes, filename: str) -> ParseResult:
        doc = DocxDocument(io.BytesIO(file_content))
        lines = [para.text for para in doc.paragraphs]
        for table in doc.tables:
            for table_row in table.rows:
                lines.extend(cell.text for cell in table_row.cells)
        return self.questions_from_text("\n".join(lines), filename)

    def questions_from_text(self, text: str, filename: str) -> ParseResult:
        """Extract questions from plain text, using short lines as section headers."""
        lines = [line.strip() for line in text.split("\n") if line.strip()]
        questions: List[ParsedQuestion] = []
        category: Optional[str] = None

        for i, line in enumerate(lines):
            if TOC_LINE.search(line):
                continue

            structured = bool(STRUCTURED_NUMBERING.match(line))
            if self._is_section_header(line, structured):
                category = line.rstrip(":.").strip()
                continue

            cleaned = STRIP_NUMBERING.sub("", STRIP_STRUCTURED.sub("", line)).strip()
            if not cleaned:
                continue

            if structured and len(cleaned) >= config.QUESTION_MIN_LENGTH:
                is_question = bool(
                    ENDS_WITH_QUESTION.search(cleaned)
                    or INTERROGATIVE_START.match(cleaned)
                    or STRUCTURED_IMPERATIVE.match(cleaned)
                )
            else:
                is_question = looks_like_question(cleaned)
            if not is_question:
                continue

            questions.append(ParsedQuestion(
                id=str(uuid.uuid4()),
                row_index=i + 1,
                text=cleaned,
                category=category,
                raw_row={"text": line},
            ))

        questions, framework = tag_framework(dedupe_questions(questions))
        logger.info(f"Extracted {len(questions)} questions from {len(lines)} lines of {filename}")
        return ParseResult(
            success=bool(questions),
            questions=questions,
            errors=[] if questions else [
                "No questions could be extracted from the document. Make sure the file contains questionnaire items."
            ],
            metadata=ParseMetadata(
                file_name=filename,
                total_rows=len(lines),
                parsed_rows=len(questions),
                detected_framework=framework,
                column_mapping=ColumnMapping(question_text="text"),
            ),
        )

    @staticmethod
    def _is_section_header(line: str, structured: bool) -> bool:
        if structured or len(line) >= config.SECTION_HEADER_MAX_LENGTH or "?" in line:
            return False
        if LEADING_NUMBERING.match(line):
            return False
        # Short imperative or interrogative lines are questions, not headers
        return not (INTERROGATIVE_START.match(line) or IMPERATIVE_START.match(line))
