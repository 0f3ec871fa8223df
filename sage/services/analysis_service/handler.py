"""Analysis Service HTTP handler - health extraction and CLI scoring.

Stateless endpoints used by the conversation front end after each user
turn (health extraction, intent) and once a talk session ends (scoring).

No raw user ids or utterances in logs: ids go through hash_pii() and
text through hash_text_for_audit().
"""
import logging
import os
from typing import Any, List, Optional

from flask import Flask, request, jsonify

from sage.shared.models import MessageRole, TalkMessage
from sage.shared.utils import hash_pii, hash_text_for_audit, configure_pii_salt_from_env
from .config import MatcherConfig, ScoringConfig
from .cli_scoring import CLIScorer, count_filler_words
from .health_extraction import HealthKeywordMatcher, observation_categories
from .health_intent import detect_health_intent, extract_pain_level, follow_up_questions

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

configure_pii_salt_from_env()

# Initialize components
matcher = HealthKeywordMatcher(MatcherConfig())
inferred_matcher = HealthKeywordMatcher(MatcherConfig(include_inferred=True))
scorer = CLIScorer(ScoringConfig.from_env())


def parse_previous_scores(raw: Any) -> List[Optional[float]]:
    """Earlier overall scores from a request: a list of numbers or nulls.

    Raises:
        TypeError: If ``raw`` is not a list, or holds anything else
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise TypeError("previous_scores must be a list")

    scores: List[Optional[float]] = []
    for value in raw:
        if value is None:
            scores.append(None)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            scores.append(float(value))
        else:
            raise TypeError(f"previous_scores holds a {type(value).__name__}")
    return scores


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for ECS/ALB."""
    return jsonify({
        "status": "healthy",
        "service": "analysis-service",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check - verifies matcher and scorer are initialized."""
    if matcher is None or scorer is None:
        return jsonify({"status": "not_ready", "reason": "analysis_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/extract-health", methods=["POST"])
def extract_health():
    """Extract candidate health observations from an utterance.

    Request Body:
        {
            "text": "My knee has been hurting a lot.",
            "user_id": "user_123" (optional),
            "include_inferred": false (optional)
        }

    Response:
        {
            "observations": [
                {"category": "pain", "description": "...",
                 "severity": "moderate", "confidence": "explicit"}
            ],
            "categories": ["pain", "mobility"]
        }
    """
    try:
        data = request.get_json(silent=True)

        if not data:
            logger.warning("EXTRACT_HEALTH_REQUEST_INVALID", extra={"reason": "empty_body"})
            return jsonify({"error": "Request body required"}), 400

        text = data.get("text")
        if not isinstance(text, str):
            logger.warning("EXTRACT_HEALTH_REQUEST_INVALID", extra={"reason": "missing_text"})
            return jsonify({"error": "Missing required field: text"}), 400

        user_id = data.get("user_id", "unknown")
        logger.info(
            "EXTRACT_HEALTH_REQUESTED",
            extra={
                "user_id_hash": hash_pii(user_id),
                "text_hash": hash_text_for_audit(text),
            }
        )

        active_matcher = inferred_matcher if data.get("include_inferred") else matcher
        observations = active_matcher.extract(text)

        return jsonify({
            "observations": [o.to_dict() for o in observations],
            "categories": [c.value for c in observation_categories(observations)],
        }), 200

    except Exception as e:
        logger.error(
            "EXTRACT_HEALTH_ERROR",
            extra={
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return jsonify({"error": "Health extraction failed"}), 500


@app.route("/detect-intent", methods=["POST"])
def detect_intent():
    """Classify the health intent of an utterance.

    Request Body:
        {"text": "My back hurts, maybe a 6"}

    Response:
        {
            "intent": "symptom" | ... | null,
            "follow_up_questions": [...],
            "pain_level": 6 | null
        }
    """
    try:
        data = request.get_json(silent=True)

        if not data or not isinstance(data.get("text"), str):
            logger.warning("DETECT_INTENT_REQUEST_INVALID", extra={"reason": "missing_text"})
            return jsonify({"error": "Missing required field: text"}), 400

        text = data["text"]
        intent = detect_health_intent(text)

        return jsonify({
            "intent": intent.value if intent else None,
            "follow_up_questions": follow_up_questions(intent),
            "pain_level": extract_pain_level(text),
        }), 200

    except Exception as e:
        logger.error(
            "DETECT_INTENT_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"error": "Intent detection failed"}), 500


@app.route("/score", methods=["POST"])
def score_session():
    """Compute the Cognitive Linguistic Index for a finished talk session.

    Request Body:
        {
            "session_id": "sess_456" (optional),
            "messages": [
                {"role": "assistant", "content": "...", "timestamp": "2026-01-14T10:00:00Z"},
                {"role": "user", "content": "...", "timestamp": "2026-01-14T10:00:04Z"}
            ],
            "duration": 120,
            "pauses": 3 (optional),
            "filler_words": 2 (optional, counted from user turns when absent),
            "previous_scores": [71, 68, ...] (optional)
        }

    Response:
        {
            "session_id": "sess_456",
            "overall": 72,
            "breakdown": {"lexical_access": ..., ...},
            "baseline": 70.0 | null
        }
    """
    try:
        data = request.get_json(silent=True)

        if not isinstance(data, dict) or not data:
            return jsonify({"error": "Request body required"}), 400

        raw_messages = data.get("messages")
        if raw_messages is None or "duration" not in data:
            logger.warning("SCORE_REQUEST_INVALID", extra={"reason": "missing_fields"})
            return jsonify({"error": "Missing messages or duration"}), 400

        try:
            messages = [TalkMessage.from_dict(m) for m in raw_messages]
            duration = float(data["duration"])
            pauses = int(data.get("pauses", 0))
            filler_words = data.get("filler_words")
            if filler_words is not None:
                filler_words = int(filler_words)
            previous = parse_previous_scores(data.get("previous_scores"))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "SCORE_REQUEST_INVALID",
                extra={"reason": "malformed_fields", "error_type": type(e).__name__}
            )
            return jsonify({"error": "Malformed score request fields"}), 400

        if filler_words is None:
            filler_words = sum(
                count_filler_words(m.content) for m in messages if m.role == MessageRole.USER
            )

        session_id = data.get("session_id")
        logger.info(
            "SCORE_REQUESTED",
            extra={
                "session_id": session_id,
                "message_count": len(messages),
            }
        )

        cli = scorer.score(
            messages,
            duration=duration,
            pauses=pauses,
            filler_words=filler_words,
            session_id=session_id,
        )

        baseline = scorer.calculate_baseline([*previous, cli.overall]) if previous else None

        return jsonify({
            "session_id": session_id,
            "overall": cli.overall,
            "breakdown": cli.breakdown.to_dict(),
            "baseline": baseline,
        }), 200

    except Exception as e:
        logger.error(
            "SCORE_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"error": "Scoring failed"}), 500


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    port = int(os.getenv("PORT", "8010"))
    app.run(host="0.0.0.0", port=port, debug=False)
