"""Answer synthesizer: one grounded completion call per question."""

from __future__ import annotations

from docqa.errors import SynthesisError
from docqa.log import get_logger
from docqa.rag.assembler import NO_CONTEXT
from docqa.rag.llm_client import CompletionProvider

logger = get_logger(__name__)

FALLBACK_ANSWER = "I cannot find this information in the document."

_PROMPT_TEMPLATE = """\
You are a helpful AI assistant that answers questions based on the provided context from a document.

CONTEXT:
{context}

INSTRUCTIONS:
1. Answer the question based ONLY on the context provided above.
2. If the answer cannot be found in the context, say "{fallback}"
3. Keep your answer concise and relevant.
4. If referring to specific parts, mention the page number from the context.

QUESTION: {question}

ANSWER:"""


def build_prompt(context: str, question: str) -> str:
    """Return the single instruction sent to the completion model."""
    return _PROMPT_TEMPLATE.format(context=context, question=question, fallback=FALLBACK_ANSWER)


def is_fallback(answer: str) -> bool:
    """True if *answer* is the fixed "not in the document" reply."""
    return answer.strip().strip('"') == FALLBACK_ANSWER


class AnswerSynthesizer:
    """Ask the completion model to answer strictly from the evidence block."""

    def __init__(self, provider: CompletionProvider) -> None:
        self._provider = provider

    async def synthesize(self, context: str, question: str) -> str:
        """Return the model's answer to *question* grounded in *context*.

        No model call is made when *context* is the no-context marker; the
        fallback phrase is returned directly.

        Raises:
            SynthesisError: If the completion service call fails.
        """
        if context == NO_CONTEXT:
            return FALLBACK_ANSWER

        try:
            answer = await self._provider.complete(build_prompt(context, question))
        except Exception as exc:
            logger.warning(
                "completion_call_failed", model=self._provider.model, error=str(exc)
            )
            raise SynthesisError(
                f"Completion call to '{self._provider.model}' failed: {exc}"
            ) from exc
        return answer.strip()
