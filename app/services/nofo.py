# app/services/nofo.py
# NOFO (Notice of Funding Opportunity) summaries generated by OpenAI.

import json
import time
from flask import current_app
from openai import OpenAI, OpenAIError
from app import db
from app.models import GrantAISummary
from app.utils import parse_date, server_error
from app.services.grants import get_grant_for_member

MAX_NOFO_CHARS = 30000
# gpt-4o-mini pricing (USD per token)
INPUT_TOKEN_COST = 0.15 / 1_000_000
OUTPUT_TOKEN_COST = 0.60 / 1_000_000

SYSTEM_PROMPT = """You are an expert grant analyst. Extract key information from NOFO (Notice of Funding Opportunity) documents.

Focus on:
- Letter of Intent (LOI) deadline (format as YYYY-MM-DD) - this often comes before the full application
- Application deadlines and key dates (format as YYYY-MM-DD)
- Eligibility requirements (organization types, geographic restrictions)
- Funding amounts (total program funding, min/max awards, expected # of awards)
- Program focus areas and priorities
- Cost sharing requirements (required: true/false, percentage if mentioned)
- Key restrictions and requirements
- Application process details
- Contact information

Return a structured JSON object with these keys: key_dates (loi_deadline, application_deadline,
award_date, project_period_start, project_period_end), eligibility (organizations, geographic,
restrictions), focus_areas, funding (total, max_award, min_award, expected_awards), priorities,
cost_sharing (required, percentage, description), restrictions, key_requirements,
application_process (submission_method, required_documents, evaluation_criteria),
contact_info (program_officer, email, phone). Use null for missing fields."""


def _openai_client():
    return OpenAI(api_key=current_app.config['OPENAI_API_KEY'], timeout=45.0, max_retries=2)


def summarize_nofo_text(pdf_text, grant_title):
    """
    Calls the LLM and returns the parsed summary plus usage figures.

    Raises:
        OpenAIError: On API failure
        ValueError: If the model returns no content, invalid JSON or JSON that is not an object
    """
    model = current_app.config['NOFO_SUMMARY_MODEL']
    started = time.monotonic()

    response = _openai_client().chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Extract key information from this NOFO for: {grant_title}\n\n"
                    f"NOFO Text:\n{pdf_text[:MAX_NOFO_CHARS]}\n\n"
                    "Please extract all key dates, eligibility criteria, funding details, "
                    "priorities, and requirements. Return valid JSON only."
                ),
            },
        ],
        response_format={"type": "json_object"},
        temperature=0.3,
    )

    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise ValueError("No response from OpenAI")

    summary = json.loads(content)
    if not isinstance(summary, dict):
        raise ValueError(f"Expected a JSON object, got {type(summary).__name__}")
    if summary.get('key_dates') is not None and not isinstance(summary['key_dates'], dict):
        raise ValueError("key_dates must be a JSON object")
    usage = response.usage
    input_tokens = getattr(usage, 'prompt_tokens', 0) or 0
    output_tokens = getattr(usage, 'completion_tokens', 0) or 0

    return {
        "summary": summary,
        "model": model,
        "token_count": getattr(usage, 'total_tokens', 0) or (input_tokens + output_tokens),
        "processing_time_ms": int((time.monotonic() - started) * 1000),
        "cost_usd": round(input_tokens * INPUT_TOKEN_COST + output_tokens * OUTPUT_TOKEN_COST, 6),
    }


def get_nofo_summary(grant_id, user):
    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    summary = (GrantAISummary.query
               .filter_by(grant_id=grant.id)
               .order_by(GrantAISummary.created_at.desc())
               .first())
    if summary is None:
        return {"success": False, "error": "No summary found for this grant"}, 404
    return {"success": True, "summary": summary.to_dict()}


def _backfill_grant_dates(grant, summary):
    """Fills empty grant deadlines from the extracted key dates."""
    key_dates = summary.get('key_dates') or {}
    for grant_field, summary_field in (('loi_deadline', 'loi_deadline'),
                                       ('close_date', 'application_deadline')):
        if getattr(grant, grant_field) is None and key_dates.get(summary_field):
            try:
                setattr(grant, grant_field, parse_date(key_dates[summary_field]))
            except ValueError:
                current_app.logger.warning(
                    f"Ignoring unparseable {summary_field} '{key_dates[summary_field]}' for grant {grant.id}"
                )


def generate_nofo_summary(grant_id, data, user):
    pdf_text = (data.get('pdf_text') or '').strip()
    if not pdf_text:
        return {"success": False, "error": "pdf_text is required"}, 400

    if not current_app.config.get('OPENAI_API_KEY'):
        return {"success": False, "error": "AI summaries are not configured"}, 500

    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    try:
        result = summarize_nofo_text(pdf_text, data.get('grant_title') or grant.title)
    except (OpenAIError, ValueError) as e:
        current_app.logger.error(f"NOFO summary failed for grant {grant_id}: {str(e)}")
        return {"success": False, "error": "Failed to generate summary"}, 502

    try:
        summary = GrantAISummary(
            org_id=grant.org_id,
            grant_id=grant.id,
            summary=result['summary'],
            model=result['model'],
            token_count=result['token_count'],
            processing_time_ms=result['processing_time_ms'],
            cost_usd=result['cost_usd'],
        )
        db.session.add(summary)
        _backfill_grant_dates(grant, result['summary'])
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error storing NOFO summary for grant {grant_id}")

    current_app.logger.info(
        f"NOFO summary for grant {grant_id}: {result['token_count']} tokens, "
        f"${result['cost_usd']:.4f}, {result['processing_time_ms']}ms"
    )
    return {"success": True, "summary": summary.to_dict(), "grant": grant.to_dict()}
