"""Spam classification of comments through an OpenAI-compatible chat endpoint."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from core import settings
from services.http_client import build_http_client
from services.options import load_option

logger = logging.getLogger(__name__)

COMMENT_OPTIONS = "commentOptions"
AI_OPTIONS = "ai"
DEFAULT_THRESHOLD = 5
MAX_SCORE = 10
TEMPERATURE = 0.3
MAX_TOKENS = 500

_SPAM_TRAITS = """Spam includes, among other things:
- advertising or marketing
- malicious or phishing links
- meaningless repeated characters or gibberish
- abuse, personal attacks or hate speech
- pornographic or violent content
- obviously machine-generated filler"""

BINARY_SYSTEM_PROMPT = f"""You are a spam detection assistant for blog comments.
Decide whether the submitted comment is spam.

{_SPAM_TRAITS}

Reply with JSON only:
{{"is_spam": true or false, "reason": "short explanation"}}"""

SCORE_SYSTEM_PROMPT = """You are a spam detection assistant for blog comments.
Rate how spammy the submitted comment is from 0 to 10.

0-2: normal comment
3-4: slightly suspicious
5-6: suspicious, possibly spam
7-8: clear spam traits
9-10: severe spam

{traits}

Reply with JSON only:
{{"score": 0-10, "reason": "short explanation"}}
The current threshold is {threshold}; a score of {threshold} or more is rejected."""

USER_PROMPT = "Comment to review:\n\nAuthor: {author}\nEmail: {email}\nContent: {text}"


class CompletionError(Exception):
    """The text-completion backend failed or returned something unusable."""


@dataclass(frozen=True)
class ModerationSettings:
    enabled: bool
    mode: str
    threshold: int

    @classmethod
    def from_option(cls, value: Mapping[str, Any]) -> ModerationSettings:
        threshold = value.get("aiReviewThreshold", DEFAULT_THRESHOLD)
        if not isinstance(threshold, int) or isinstance(threshold, bool):
            threshold = DEFAULT_THRESHOLD
        return cls(
            enabled=bool(value.get("antiSpam")) and bool(value.get("aiReview")),
            mode=str(value.get("aiReviewType") or "binary"),
            threshold=max(0, min(threshold, MAX_SCORE)),
        )


@dataclass(frozen=True)
class CompletionSettings:
    enabled: bool
    endpoint: str
    model: str
    api_key: str

    @classmethod
    def from_option(cls, value: Mapping[str, Any]) -> CompletionSettings:
        return cls(
            enabled=bool(value.get("enableSummary")),
            endpoint=str(value.get("openAiEndpoint") or "").rstrip("/"),
            model=str(value.get("openAiPreferredModel") or ""),
            api_key=str(value.get("openAiKey") or ""),
        )


@dataclass(frozen=True)
class SpamVerdict:
    is_spam: bool
    confidence: float
    reason: str | None = None


PASS = SpamVerdict(is_spam=False, confidence=0.0)


class TextCompletionClient:
    """Minimal chat-completions client: messages in, one text completion out."""

    def __init__(self, config: CompletionSettings) -> None:
        self.config = config

    async def complete(
        self,
        messages: Sequence[Mapping[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        if not self.config.endpoint or not self.config.model:
            raise CompletionError("completion endpoint or model is not configured")

        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        body = {
            "model": self.config.model,
            "messages": list(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        async with build_http_client(settings.classifier_timeout_seconds) as client:
            try:
                response = await client.post(
                    f"{self.config.endpoint}/chat/completions", json=body, headers=headers
                )
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise CompletionError(str(exc)) from exc

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CompletionError("completion response has no message content") from exc
        if not isinstance(content, str):
            raise CompletionError("completion content is not text")
        return content


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    _, newline, rest = text.partition("\n")
    body = rest if newline else text
    closing = body.rfind("```")
    if closing != -1:
        body = body[:closing]
    return body.strip()


def extract_json(response: str) -> str:
    """Pull the first JSON object out of a model reply.

    Handles code fences, prose around the object and replies cut off before
    the closing brace.
    """
    cleaned = _strip_code_fence(response.strip())
    start = cleaned.find("{")
    if start == -1:
        return cleaned

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(cleaned)):
        char = cleaned[index]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif char == "{" and not in_string:
            depth += 1
        elif char == "}" and not in_string:
            depth -= 1
            if depth == 0:
                return cleaned[start : index + 1]

    # Truncated: close the dangling string and any open braces.
    partial = cleaned[start:]
    if partial.count('"') % 2:
        partial += '"'
    return partial + "}" * max(partial.count("{") - partial.count("}"), 0)


def parse_binary_verdict(response: str) -> SpamVerdict:
    try:
        data = json.loads(extract_json(response))
    except ValueError:
        logger.warning("Unparseable binary spam verdict", extra={"response": response[:500]})
        return PASS
    if not isinstance(data, dict) or not isinstance(data.get("is_spam"), bool):
        logger.warning("Malformed binary spam verdict", extra={"response": response[:500]})
        return PASS
    is_spam = data["is_spam"]
    reason = data.get("reason")
    return SpamVerdict(
        is_spam=is_spam,
        confidence=1.0 if is_spam else 0.0,
        reason=str(reason) if reason is not None else None,
    )


def parse_score_verdict(response: str, threshold: int) -> SpamVerdict:
    try:
        data = json.loads(extract_json(response))
    except ValueError:
        logger.warning("Unparseable spam score", extra={"response": response[:500]})
        return PASS
    score = data.get("score") if isinstance(data, dict) else None
    if (
        not isinstance(score, (int, float))
        or isinstance(score, bool)
        or not math.isfinite(score)
        or score < 0
    ):
        logger.warning("Malformed spam score", extra={"response": response[:500]})
        return PASS
    score = min(int(score), MAX_SCORE)
    reason = data.get("reason")
    return SpamVerdict(
        is_spam=score >= threshold,
        confidence=score / MAX_SCORE,
        reason=f"score {score}/{MAX_SCORE}: {reason}" if reason else f"score {score}/{MAX_SCORE}",
    )


class SpamClassifier:
    """Turns a comment into a verdict. Every failure yields the pass verdict."""

    async def is_enabled(self, session: AsyncSession) -> bool:
        return ModerationSettings.from_option(await load_option(session, COMMENT_OPTIONS)).enabled

    async def check(
        self,
        session: AsyncSession,
        *,
        text: str,
        author: str,
        email: str,
    ) -> SpamVerdict:
        moderation = ModerationSettings.from_option(await load_option(session, COMMENT_OPTIONS))
        if not moderation.enabled:
            return PASS
        completion = CompletionSettings.from_option(await load_option(session, AI_OPTIONS))
        if not completion.enabled:
            logger.debug("Text completion backend disabled; skipping spam review")
            return PASS
        return await self.classify(
            text=text,
            author=author,
            email=email,
            moderation=moderation,
            client=TextCompletionClient(completion),
        )

    async def classify(
        self,
        *,
        text: str,
        author: str,
        email: str,
        moderation: ModerationSettings,
        client: TextCompletionClient,
    ) -> SpamVerdict:
        if moderation.mode == "binary":
            system_prompt = BINARY_SYSTEM_PROMPT
        elif moderation.mode == "score":
            system_prompt = SCORE_SYSTEM_PROMPT.format(
                traits=_SPAM_TRAITS, threshold=moderation.threshold
            )
        else:
            logger.warning("Unknown spam review mode", extra={"mode": moderation.mode})
            return PASS

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": USER_PROMPT.format(author=author, email=email, text=text)},
        ]
        try:
            response = await client.complete(
                messages, temperature=TEMPERATURE, max_tokens=MAX_TOKENS
            )
        except CompletionError as exc:
            logger.error("Spam classification failed", extra={"mode": moderation.mode}, exc_info=exc)
            return PASS

        if moderation.mode == "binary":
            return parse_binary_verdict(response)
        return parse_score_verdict(response, moderation.threshold)


__all__ = [
    "COMMENT_OPTIONS",
    "AI_OPTIONS",
    "CompletionError",
    "CompletionSettings",
    "ModerationSettings",
    "PASS",
    "SpamClassifier",
    "SpamVerdict",
    "TextCompletionClient",
    "extract_json",
    "parse_binary_verdict",
    "parse_score_verdict",
]
