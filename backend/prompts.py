from __future__ import annotations

DOCUMENT_TEMPLATES = {
    "contract": "a comprehensive contract agreement",
    "nda": "a non-disclosure agreement (NDA)",
    "employment": "an employment agreement contract",
    "rental": "a rental/lease agreement",
    "service": "a service agreement contract",
    "partnership": "a partnership agreement",
    "terms": "terms of service document",
    "privacy": "a privacy policy document",
    "invoice": "a legal invoice template",
    "notice": "a legal notice document",
}
DEFAULT_DOCUMENT_TEMPLATE = "a legal document"

ANALYSIS_GENERATION_CONFIG = {"temperature": 0.2, "topP": 0.8, "topK": 40}

_ANALYSIS_SCHEMA = """{
    "documentType": "Specific type, e.g. 'Anticipatory Bail Order', 'Civil Contract', 'Legal Notice'",
    "summary": "4-6 sentences: what the document is, who the parties are, the main issue, the action taken or requested, the outcome",
    "keyPoints": ["8-12 specific points: case numbers, full party names, dates, sections cited, exact amounts, court and judge names, orders, conditions, deadlines"],
    "legalConcerns": ["4-8 specific legal issues, risks, procedural gaps, jurisdiction concerns or time-sensitive matters"],
    "recommendations": ["5-10 specific, actionable steps: experts to consult, evidence to gather, deadlines to meet, risk mitigation"],
    "partiesInvolved": {
        "petitioners": ["Petitioner names with their role"],
        "respondents": ["Respondent names"],
        "otherParties": ["Other relevant parties"]
    },
    "timelineCritical": ["'Date - Event' entries in chronological order"],
    "legalProvisions": ["'Section X of Act Name' with a brief explanation"]
}"""


def build_chat_prompt(message: str, legal_context: str | None = None) -> str:
    return f"{legal_context or ''}\n\nUser question: {message}"


def build_analysis_prompt(document_text: str) -> str:
    return (
        "You are an expert legal document analyzer with expertise in Indian law, court proceedings "
        "and legal documentation. Analyze the following document thoroughly and accurately.\n\n"
        f"DOCUMENT CONTENT:\n{document_text}\n\n"
        "INSTRUCTIONS:\n"
        "1. Read the entire document before analyzing.\n"
        "2. Extract all specific details: names, dates, case numbers, sections, amounts.\n"
        "3. Identify the exact type of legal document.\n"
        "4. For court orders identify the ruling, conditions and implications; for contracts the parties, "
        "obligations and terms; for notices the demands and timelines.\n"
        "5. Be specific. Do not add information that is not present in the document.\n\n"
        "Respond with a single JSON object in exactly this format:\n\n"
        f"{_ANALYSIS_SCHEMA}"
    )


def document_template(document_type: str) -> str:
    return DOCUMENT_TEMPLATES.get((document_type or "").strip().lower(), DEFAULT_DOCUMENT_TEMPLATE)


def build_generation_prompt(document_type: str, title: str, description: str) -> str:
    return (
        f"You are a professional legal document writer. Generate {document_template(document_type)} "
        "with the following details:\n\n"
        f"Title: {title}\n"
        f"Requirements: {description}\n\n"
        "Create a comprehensive, professional legal document with proper headings, numbered clauses, "
        "definitions, obligations of each party, termination and dispute-resolution terms, and signature "
        "blocks. Use placeholders in square brackets for details that are not provided."
    )


def build_translation_prompt(document_text: str, target_language: str, max_chars: int = 30000) -> str:
    return (
        f"Translate the following legal document to {target_language}. Maintain all legal terminology "
        "accuracy and document structure. Also identify the original language.\n\n"
        f"Document content:\n{document_text[:max_chars]}\n\n"
        "Provide your response in this exact format:\n"
        "Original Language: [detected language]\n"
        "---\n"
        "[translated content here with proper formatting and line breaks]"
    )
