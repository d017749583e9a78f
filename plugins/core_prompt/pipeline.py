# plugins/core_prompt/pipeline.py

import logging
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from backend.core.config import Settings
from backend.core.contracts import ChatMessage, HookManager, Hooks, MessageRole
from plugins.core_budget.budget import TokenBudget, allocate_budget, trim_history
from plugins.core_budget.tokenizers import Tokenizer, TokenizerRegistry
from plugins.core_llm.contracts import CompletionParams, StreamChunk, StreamChunkType
from plugins.core_llm.registry import ProviderRegistry
from plugins.core_lorebook.activation import LorebookActivationEngine, record_activations
from plugins.core_lorebook.models import (
    ActivationContext, LorebookPosition, LorebookPromptResult, format_lorebook_section,
)
from plugins.core_memoria.search import MemorySearch, format_memory_context
from plugins.core_triggers.contracts import RegexRuleStore
from plugins.core_triggers.engine import TriggerEngine
from plugins.core_triggers.models import (
    Injection, RegexPlacement, TriggerActivation, TriggerExecutionContext, create_trigger_context,
)
from plugins.core_triggers.regex_rules import apply_regex_rules
from .assembler import PromptSlots, assemble_prompt, canonical_slot
from .macros import MacroContext, expand_macros, expand_macros_in_object
from .models import PreparedTurn, TurnRequest, TurnResult

logger = logging.getLogger(__name__)

# lorebook positions that wrap a text slot: position -> (slot, placed before the slot text)
_ANCHORED_POSITIONS = {
    LorebookPosition.BEFORE_SYSTEM: ("system", True),
    LorebookPosition.AFTER_SYSTEM: ("system", False),
    LorebookPosition.BEFORE_PERSONA: ("persona", True),
    LorebookPosition.AFTER_PERSONA: ("persona", False),
    LorebookPosition.BEFORE_AUTHOR: ("author_note", True),
    LorebookPosition.AFTER_AUTHOR: ("author_note", False),
}


# --- 1. Pure helpers ---

def fold_injections(result: LorebookPromptResult, injections: Sequence[Injection]) -> Dict[str, List[str]]:
    """Lorebook sections with trigger injections appended at their positions."""
    sections = {position: list(contents) for position, contents in result.sections.items()}
    for injection in injections:
        sections.setdefault(LorebookPosition(injection.position).value, []).append(injection.content)
    return sections


def place_sections(slots: PromptSlots, sections: Dict[str, List[str]], order: Optional[Sequence[str]]) -> PromptSlots:
    """
    Merge positioned lorebook text into the slots.

    Text for a system/persona/author position wraps that slot when the slot
    has text and appears in the order; everything else, including the
    history positions, goes to the `lorebook` slot in position order.
    """
    present = {canonical_slot(name) for name in (order or [])}
    values = slots.model_dump()
    pool: List[str] = [values["lorebook"]] if values["lorebook"] else []

    for position in LorebookPosition:
        text = format_lorebook_section(sections.get(position.value, []))
        if not text:
            continue
        anchor = _ANCHORED_POSITIONS.get(position)
        if anchor is not None and anchor[0] in present and values[anchor[0]]:
            slot, before = anchor
            values[slot] = f"{text}\n\n{values[slot]}" if before else f"{values[slot]}\n\n{text}"
        else:
            pool.append(text)

    values["lorebook"] = "\n\n".join(pool)
    return PromptSlots(**values)


def last_user_index(messages: Sequence[ChatMessage]) -> Optional[int]:
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role == MessageRole.USER:
            return i
    return None


# --- 2. The turn pipeline ---

class ChatPipeline:
    """
    Runs one chat turn from the user's message to the model's reply.

    `prepare` builds the prompt: regex rules and triggers over the user
    input, memory search and lorebook activation, budget allocation and
    history trimming, then slot assembly. `stream` sends the prompt to a
    provider and post-processes the reply. Neither raises: failures while
    streaming surface as a single error chunk.
    """

    def __init__(
        self,
        settings: Settings,
        tokenizers: TokenizerRegistry,
        lorebook_engine: LorebookActivationEngine,
        trigger_engine: TriggerEngine,
        providers: ProviderRegistry,
        regex_rules: Optional[RegexRuleStore] = None,
        memory_search: Optional[MemorySearch] = None,
        hook_manager: Optional[HookManager] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.tokenizers = tokenizers
        self.lorebook_engine = lorebook_engine
        self.trigger_engine = trigger_engine
        self.providers = providers
        self.regex_rules = regex_rules
        self.memory_search = memory_search
        self.hook_manager = hook_manager
        self.clock = clock

    # --- 2.1 Prompt preparation ---

    def _apply_regex(self, text: str, placement: RegexPlacement, character_id: Optional[str]) -> str:
        if self.regex_rules is None:
            return text
        return apply_regex_rules(text, self.regex_rules.list(placement, character_id), placement)

    def _run_input_triggers(self, request: TurnRequest, user_text: str) -> TriggerExecutionContext:
        """
        Runs on_user_input then before_generation, each over its own context.
        The second sees the message as the first left it; injections and
        alerts of both are returned together.
        """
        def fresh(text: str) -> TriggerExecutionContext:
            return create_trigger_context(
                text, len(request.messages), chat_id=request.chat_id, character_id=request.character_id,
            )

        on_input = fresh(user_text)
        self.trigger_engine.run_for(TriggerActivation.ON_USER_INPUT, on_input)
        if on_input.stop_generation:
            return on_input

        before = fresh(on_input.message_content)
        self.trigger_engine.run_for(TriggerActivation.BEFORE_GENERATION, before)
        return before.model_copy(update={
            "injections": on_input.injections + before.injections,
            "alerts": on_input.alerts + before.alerts,
        })

    async def _search_memory(self, request: TurnRequest, query: str):
        if not request.use_memory or self.memory_search is None or not query.strip():
            return []
        return await self.memory_search.search(
            query, scope=request.memory_scope, source_id=request.memory_source_id,
        )

    def _activate_lorebooks(self, request: TurnRequest, messages: List[ChatMessage]) -> LorebookPromptResult:
        if not request.lorebooks:
            return LorebookPromptResult()
        scan_depth = max(loaded.lorebook.scan_depth for loaded in request.lorebooks)
        context = ActivationContext(
            messages=messages[-scan_depth:] if scan_depth > 0 else [],
            character_fields=request.character_fields,
            author_note=request.author_note or None,
            current_turn=request.current_turn,
            activation_history=request.activation_history,
        )
        return self.lorebook_engine.activate(request.lorebooks, context)

    def _allocate(self, request: TurnRequest, slots: PromptSlots, tokenizer: Tokenizer) -> TokenBudget:
        config = self.settings.budget
        reserves = {
            name: tokenizer.count(slots.text(name))
            for name in ("lorebook", "author_note", "skills")
            if slots.text(name)
        }
        memory_cost = tokenizer.count(slots.memory) if slots.memory else 0
        return allocate_budget(
            context_window=request.context_window or config.context_window,
            max_response_tokens=config.max_response_tokens,
            system_tokens=config.system_tokens,
            persona_tokens=config.persona_tokens,
            memory_tokens=max(config.memory_tokens, memory_cost),
            reserves=reserves,
        )

    async def prepare(self, request: TurnRequest) -> PreparedTurn:
        messages = list(request.messages)
        user_index = last_user_index(messages)
        user_text = messages[user_index].content if user_index is not None else ""
        model_id = request.model_id or self.settings.llm.model_id
        prepared = PreparedTurn(model_id=model_id)

        # 1. user input: regex rules, then on_user_input and before_generation triggers
        user_text = self._apply_regex(user_text, RegexPlacement.USER_INPUT, request.character_id)
        trigger_context = self._run_input_triggers(request, user_text)
        prepared.trigger_context = trigger_context
        if user_index is not None:
            messages[user_index] = messages[user_index].model_copy(update={"content": trigger_context.message_content})

        if trigger_context.stop_generation:
            logger.info(f"Turn for chat '{request.chat_id}' stopped by a trigger before generation.")
            return prepared

        # 2. memory and lorebooks
        prepared.memory = await self._search_memory(request, trigger_context.message_content)
        prepared.lorebook = self._activate_lorebooks(request, messages)
        if request.current_turn is not None:
            prepared.activation_history = record_activations(
                request.activation_history, prepared.lorebook, request.current_turn,
            )

        order = request.assembly_order or self.settings.prompt.assembly_order
        system_prompt = request.system_prompt if request.system_prompt is not None else self.settings.prompt.system_prompt
        slots = PromptSlots(
            system=system_prompt,
            persona=request.persona,
            author_note=request.author_note,
            memory=format_memory_context(prepared.memory),
            skills=request.skills,
        )
        slots = place_sections(slots, fold_injections(prepared.lorebook, trigger_context.injections), order)

        # 3. plugins may rewrite slot text, then macros
        if self.hook_manager is not None:
            slots = await self.hook_manager.filter(Hooks.BEFORE_PROMPT_ASSEMBLY, slots, request=request)
        macro_context = MacroContext(
            user_name=request.user_name or self.settings.prompt.user_name,
            char_name=request.char_name or self.settings.prompt.char_name,
            model_name=model_id,
        )
        slots = PromptSlots(**expand_macros_in_object(slots.model_dump(), macro_context, self.clock))
        messages = [
            m.model_copy(update={"content": expand_macros(m.content, macro_context, self.clock)})
            for m in messages
        ]
        prepared.slots = slots

        # 4. budget; the turn's own user message is always sent
        tokenizer = self.tokenizers.get_tokenizer(model_id)
        prepared.budget = self._allocate(request, slots, tokenizer)
        user_index = last_user_index(messages)
        if user_index is not None:
            user_message = messages[user_index]
            conversation = messages[:user_index] + messages[user_index + 1:]
            history_budget = prepared.budget.history - tokenizer.count(user_message.content)
            kept = trim_history(conversation, history_budget, tokenizer.count) + [user_message]
        else:
            kept = trim_history(messages, prepared.budget.history, tokenizer.count)
        prepared.history_dropped = len(messages) - len(kept)

        # 5. assembly
        prepared.messages = assemble_prompt(kept, slots, order)
        logger.info(
            f"Prompt prepared for chat '{request.chat_id}': {len(prepared.messages)} messages, "
            f"{prepared.lorebook.activated_count} lorebook entries, {len(prepared.memory)} memories, "
            f"{prepared.history_dropped} history messages dropped."
        )
        return prepared

    # --- 2.2 Generation ---

    def _completion_params(self, request: TurnRequest, prepared: PreparedTurn) -> CompletionParams:
        llm = self.settings.llm
        return CompletionParams(
            model_id=prepared.model_id,
            temperature=request.temperature if request.temperature is not None else llm.temperature,
            max_tokens=request.max_tokens or llm.max_tokens,
        )

    def _provider_id(self, request: TurnRequest) -> str:
        if self.settings.llm.debug_mode:
            return "mock"
        return request.provider_id or self.settings.llm.default_provider

    async def _finish(self, request: TurnRequest, prepared: PreparedTurn, result: TurnResult) -> None:
        """ai_output regex rules and after_generation triggers over the reply, then the hook."""
        text = self._apply_regex(result.raw_text, RegexPlacement.AI_OUTPUT, request.character_id)
        context = create_trigger_context(
            text, len(request.messages) + 1, chat_id=request.chat_id, character_id=request.character_id,
        )
        self.trigger_engine.run_for(TriggerActivation.AFTER_GENERATION, context)
        result.text = context.message_content
        result.alerts.extend(context.alerts)

        if self.hook_manager is not None:
            await self.hook_manager.trigger(
                Hooks.AFTER_GENERATION, request=request, prepared=prepared, result=result,
            )

    async def stream(self, request: TurnRequest, result: Optional[TurnResult] = None) -> AsyncIterator[StreamChunk]:
        """
        Token chunks as the provider produces them, ending with exactly one
        `done` or `error` chunk. Pass a TurnResult to read the processed
        reply once the stream is exhausted.
        """
        result = result if result is not None else TurnResult()
        try:
            prepared = await self.prepare(request)
            result.prepared = prepared
            result.alerts.extend(prepared.alerts)

            if prepared.stop_generation:
                result.stopped = True
                yield StreamChunk.done()
                return

            provider = self.providers.resolve(self._provider_id(request))
            logger.info(f"Streaming turn for chat '{request.chat_id}' from provider '{provider.id}'.")
            async for chunk in provider.create_chat_completion(prepared.messages, self._completion_params(request, prepared)):
                if chunk.type == StreamChunkType.TOKEN:
                    result.raw_text += chunk.value or ""
                    yield chunk
                elif chunk.type == StreamChunkType.ERROR:
                    result.error = chunk.message
                    logger.error(f"Provider '{provider.id}' failed: {chunk.message}")
                    yield chunk
                    return
                elif chunk.type == StreamChunkType.DONE:
                    break

            await self._finish(request, prepared, result)
        except Exception as e:
            logger.error(f"Chat pipeline failed for chat '{request.chat_id}': {e}", exc_info=True)
            result.error = str(e)
            yield StreamChunk.error(str(e))
            return

        yield StreamChunk.done()

    async def complete(self, request: TurnRequest) -> TurnResult:
        """Run a whole turn without streaming."""
        result = TurnResult()
        async for _ in self.stream(request, result):
            pass
        return result
