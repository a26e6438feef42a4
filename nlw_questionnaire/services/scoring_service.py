import logging
import re

from ..schemas import RISK_PROFILES

logger = logging.getLogger(__name__)

# Upper bounds (exclusive) of each profile band, most conservative first.
# Anything at or above the last bound is the top profile.
RISK_THRESHOLDS = (52, 84, 119, 204, 239, 270)

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def answer_field(position):
    """Answer key read for the question at 1-based `position`."""
    return f'question{position}'


def determine_risk_profile(score):
    for bound, profile in zip(RISK_THRESHOLDS, RISK_PROFILES):
        if score < bound:
            return profile
    return RISK_PROFILES[-1]


def fallback_score(answers):
    """Sum of every answer value that starts with an integer."""
    total = 0
    for value in (answers or {}).values():
        match = _LEADING_INT.match(str(value))
        if match:
            total += int(match.group(1))
    return total


def score(template, answers):
    """
    Score a risk tolerance answer map against `template`.

    The Nth question reads `question{N}`; the matching option's value is added.
    Missing answers and unknown option ids add nothing. Without a template every
    numeric answer value is summed instead. Returns (score, risk_profile).
    """
    answers = answers or {}
    if template is None:
        total = fallback_score(answers)
        logger.debug(f"No template, fallback score {total}")
        return total, determine_risk_profile(total)

    total = 0
    for position, question in enumerate(template.questions, start=1):
        answer_id = answers.get(answer_field(position))
        if not answer_id:
            logger.debug(f"Question {question.id} (#{position}): no answer")
            continue
        option = next((o for o in question.options if o.id == answer_id), None)
        if option is None:
            logger.debug(f"Question {question.id} (#{position}): unknown option {answer_id}")
            continue
        total += option.value
        logger.debug(f"Question {question.id} (#{position}): {answer_id} = {option.value}, running {total}")

    profile = determine_risk_profile(total)
    logger.debug(f"Template {template.id} v{template.version}: score {total} -> {profile}")
    return total, profile
