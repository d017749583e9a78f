# plugins/core_budget/tokenizers.py

import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from backend.core.patterns import compile_pattern

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Word-based estimate: roughly 1.3 tokens per word plus a small fixed overhead."""
    if not text:
        return 0
    return math.ceil(len(text.split()) * 1.3) + 2


class Tokenizer(ABC):
    name: str = "tokenizer"
    model_family: str = "fallback"

    @abstractmethod
    def count(self, text: str) -> int:
        raise NotImplementedError


class HeuristicTokenizer(Tokenizer):
    """About four characters per token, plus three for special tokens."""
    name = "Heuristic (~4 chars/token)"
    model_family = "fallback"

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / 4) + 3


class WordHeuristicTokenizer(Tokenizer):
    name = "Heuristic (~1.3 tokens/word)"
    model_family = "fallback"

    def count(self, text: str) -> int:
        return estimate_tokens(text)


class TokenizerInfo(BaseModel):
    id: str
    name: str
    model_family: str
    model_patterns: List[str] = Field(default_factory=list, description="Case-insensitive regexes matched against model ids.")


class TokenCount(BaseModel):
    count: int
    is_approximate: bool
    tokenizer_name: str


BUILTIN_TOKENIZERS: List[TokenizerInfo] = [
    TokenizerInfo(id="cl100k_base", name="cl100k_base (GPT-4, GPT-3.5)", model_family="openai",
                  model_patterns=[r"gpt-4(?!o)", r"gpt-3\.5", r"gpt-35", r"text-embedding-ada"]),
    TokenizerInfo(id="o200k_base", name="o200k_base (GPT-4o, o1, o3)", model_family="openai",
                  model_patterns=[r"gpt-4o", r"o1", r"o3", r"chatgpt"]),
    TokenizerInfo(id="claude", name="Claude (cl100k approx)", model_family="anthropic",
                  model_patterns=[r"claude"]),
    TokenizerInfo(id="llama", name="Llama (SentencePiece)", model_family="llama",
                  model_patterns=[r"llama", r"codellama", r"mistral", r"mixtral"]),
]


class TokenizerRegistry:
    """
    Resolves the best available tokenizer for a model id.

    Only the heuristic tokenizer is available out of the box; exact
    tokenizers are plugged in with `register_tokenizer`. Any model whose
    family has no registered tokenizer falls back to the heuristic.
    """
    HEURISTIC_ID = "heuristic"

    def __init__(self):
        self._heuristic = HeuristicTokenizer()
        self._tokenizers: Dict[str, Tokenizer] = {self.HEURISTIC_ID: self._heuristic}
        self._info: List[TokenizerInfo] = list(BUILTIN_TOKENIZERS)

    @property
    def heuristic(self) -> Tokenizer:
        return self._heuristic

    def register_tokenizer(self, tokenizer_id: str, tokenizer: Tokenizer, info: Optional[TokenizerInfo] = None) -> None:
        if tokenizer_id in self._tokenizers:
            logger.warning(f"Overwriting tokenizer '{tokenizer_id}'.")
        self._tokenizers[tokenizer_id] = tokenizer
        if info is not None:
            # custom tokenizers take precedence over the built-in table
            self._info.insert(0, info)
        logger.debug(f"Tokenizer '{tokenizer_id}' registered ({tokenizer.name}).")

    def get_tokenizer_by_id(self, tokenizer_id: str) -> Optional[Tokenizer]:
        return self._tokenizers.get(tokenizer_id)

    def list_tokenizers(self) -> List[TokenizerInfo]:
        return list(self._info)

    def _find_info(self, model_id: str) -> Optional[TokenizerInfo]:
        for info in self._info:
            for pattern in info.model_patterns:
                compiled = compile_pattern(pattern, "i")
                if compiled.is_valid:
                    if compiled.test(model_id):
                        return info
                elif pattern.lower() in model_id.lower():
                    return info
        return None

    def get_tokenizer(self, model_id: Optional[str]) -> Tokenizer:
        if not model_id:
            return self._heuristic
        info = self._find_info(model_id)
        if info is not None and info.id in self._tokenizers:
            return self._tokenizers[info.id]
        return self._heuristic

    def count_tokens(self, text: str, model_id: Optional[str] = None) -> TokenCount:
        tokenizer = self.get_tokenizer(model_id)
        return TokenCount(
            count=tokenizer.count(text),
            is_approximate=tokenizer is self._heuristic,
            tokenizer_name=tokenizer.name,
        )
