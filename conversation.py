"""
Conversation state machine for the Stock Order Bot
Decides the next state, the store effects and the reply for one chat turn

The functions here never touch the store: every read arrives as a snapshot
argument and every write is returned as an effect for the engine to apply.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from config import Config
from ledger import COLUMN_ORDER, COLUMN_REMAINING, LedgerRow
from scratch import ScratchEntry
from utils import format_choices, parse_yes_no
from validators import (
    normalize_text, validate_correction_kind, validate_product_choice,
    validate_quantity
)

logger = logging.getLogger(__name__)

Number = Union[int, float]


class ConversationState(str, Enum):
    """Where a user is in the dialogue; values are what the state table stores"""
    IDLE = "通常"
    CONFIRM_START = "入力確認中"
    COLLECTING = "入力中"
    CONFIRM_OVERWRITE = "上書き確認中"
    CONFIRM_COMMIT = "登録確認中"
    CONFIRM_CORRECTION_START = "訂正確認中"
    CHOOSE_CORRECTION_KIND = "訂正種別選択中"
    CHOOSE_CORRECTION_TARGET = "訂正選択中"
    CORRECTION_COLLECTING = "訂正入力中"
    CONFIRM_CORRECTION_COMMIT = "訂正確認入力中"
    CONFIRM_ORDER_CORRECTION_START = "発注訂正確認中"
    CHOOSE_ORDER_CORRECTION_TARGET = "発注訂正選択中"
    ORDER_CORRECTION_COLLECTING = "発注訂正入力中"
    CONFIRM_ORDER_CORRECTION_COMMIT = "発注訂正確認入力中"


def parse_state(value: Optional[str]) -> ConversationState:
    """Read a stored state value, treating missing or unknown values as idle"""
    if not value:
        return ConversationState.IDLE
    try:
        return ConversationState(value)
    except ValueError:
        logger.warning(f"Unknown stored state {value!r}, treating as idle")
        return ConversationState.IDLE


# ---- Effects ----
@dataclass(frozen=True)
class ClearScratch:
    """Drop every scratch row of the user"""


@dataclass(frozen=True)
class RecordScratch:
    """Upsert the scratch entry of a product, pending when quantity is None"""
    product: str
    quantity: Optional[Number] = None


@dataclass(frozen=True)
class CommitLedger:
    """Write the collected remaining quantities to the ledger"""
    quantities: Tuple[Tuple[str, Number], ...]


@dataclass(frozen=True)
class ArchiveLedgerDay:
    """Move the user's ledger rows for the flow date to the backup table"""


@dataclass(frozen=True)
class UpdateLedgerCell:
    """Overwrite one quantity cell of an existing ledger row"""
    row: LedgerRow
    column: int
    value: Number


Effect = Union[ClearScratch, RecordScratch, CommitLedger, ArchiveLedgerDay, UpdateLedgerCell]


@dataclass(frozen=True)
class Transition:
    """Outcome of one turn"""
    state: ConversationState
    reply: str
    effects: Tuple[Effect, ...] = ()
    business_date: str = ""
    # Reply contains '{summary}' to be filled from the committed rows
    summarize: bool = False
    failure_reply: str = ""


@dataclass(frozen=True)
class Turn:
    """Everything a handler may look at"""
    state: ConversationState
    text: str
    user_id: str
    business_date: str
    scratch: Dict[str, ScratchEntry] = field(default_factory=dict)
    ledger: Sequence[LedgerRow] = ()

    @property
    def catalog(self) -> List[str]:
        return list(Config.PRODUCTS)


# ---- Reply texts ----
GENERIC_ERROR = "エラーが発生しました。もう一度送信してください。"


def _yes_no() -> str:
    return f"「{Config.KEYWORD_YES}」または「{Config.KEYWORD_NO}」と送信してください。"


def _cancel_hint(action: str = "入力") -> str:
    return f"\n{action}をやめる場合は「{Config.KEYWORD_CANCEL}」と送信してください。"


def _menu() -> str:
    keywords = [Config.KEYWORD_START, Config.KEYWORD_CORRECT,
                Config.KEYWORD_ORDER_CORRECT, Config.KEYWORD_CHECK]
    return "「" + "」「".join(keywords) + "」のいずれかを送信してください。"


def _ask_remaining(product: str) -> str:
    return f"{product}の残数を数字で入力してください。"


def _ask_commit(turn: Turn) -> str:
    return (
        f"{len(turn.catalog)}つすべての入力が完了しました。"
        f"登録しますか？（{Config.KEYWORD_YES}／{Config.KEYWORD_NO}）"
    )


def _choose_target(turn: Turn, prefix: str = "") -> str:
    return f"{prefix}訂正する材料を選んでください。（{format_choices(turn.catalog)}）"


def _choose_order_target(turn: Turn, prefix: str = "") -> str:
    return f"{prefix}発注数を訂正する材料を選んでください。（{format_choices(turn.catalog)}）"


# ---- Helpers ----
def _stay(turn: Turn, reply: str) -> Transition:
    """Re-prompt without changing state"""
    return Transition(turn.state, reply, business_date=turn.business_date)


def _go(turn: Turn, state: ConversationState, reply: str, effects: Sequence[Effect] = (),
        **kwargs) -> Transition:
    date = "" if state is ConversationState.IDLE else turn.business_date
    return Transition(state, reply, tuple(effects), business_date=date, **kwargs)


def _idle(turn: Turn, reply: str, effects: Sequence[Effect] = ()) -> Transition:
    return _go(turn, ConversationState.IDLE, reply, effects)


def _entry_complete(turn: Turn) -> bool:
    """True when every product has a usable ledger row for the flow date"""
    recorded = {row.product: row for row in turn.ledger}
    return all(p in recorded and recorded[p].complete for p in turn.catalog)


def _correction_target(turn: Turn) -> Optional[ScratchEntry]:
    entries = [entry for entry in turn.scratch.values() if entry.product in turn.catalog]
    return entries[-1] if entries else None


def _find_row(turn: Turn, product: str) -> Optional[LedgerRow]:
    for row in turn.ledger:
        if row.product == product:
            return row
    return None


# ---- Initial entry ----
def handle_idle(turn: Turn) -> Transition:
    text = normalize_text(turn.text)

    if text == Config.KEYWORD_START:
        return _go(turn, ConversationState.CONFIRM_START,
                   f"{turn.business_date}の残数入力を開始しますか？"
                   f"（{Config.KEYWORD_YES}／{Config.KEYWORD_NO}）")

    if text in (Config.KEYWORD_CORRECT, Config.KEYWORD_ORDER_CORRECT):
        if not _entry_complete(turn):
            return _idle(turn, f"{turn.business_date}の入力がまだ完了していないため訂正できません。"
                               f"先に「{Config.KEYWORD_START}」を送信してください。")
        if text == Config.KEYWORD_CORRECT:
            return _go(turn, ConversationState.CONFIRM_CORRECTION_START,
                       f"{turn.business_date}の記録を訂正しますか？"
                       f"（{Config.KEYWORD_YES}／{Config.KEYWORD_NO}）")
        return _go(turn, ConversationState.CONFIRM_ORDER_CORRECTION_START,
                   f"{turn.business_date}の発注数を訂正しますか？"
                   f"（{Config.KEYWORD_YES}／{Config.KEYWORD_NO}）")

    if text == Config.KEYWORD_CHECK:
        if not turn.ledger:
            return _idle(turn, f"{turn.business_date}の発注記録はまだありません。")
        lines = [
            f"{row.product}：残数{row.remaining or '-'}／発注{row.order_display}個"
            for row in turn.ledger
        ]
        return _idle(turn, f"{turn.business_date}の発注内容\n\n" + "\n".join(lines))

    return _idle(turn, _menu())


def handle_confirm_start(turn: Turn) -> Transition:
    answer = parse_yes_no(turn.text)

    if answer is True:
        if turn.ledger:
            return _go(turn, ConversationState.CONFIRM_OVERWRITE,
                       f"{turn.business_date}の発注記録は登録済みです。入力し直しますか？"
                       f"（{Config.KEYWORD_YES}／{Config.KEYWORD_NO}）\n"
                       f"※登録済みの記録はバックアップに移動します。")
        return _go(turn, ConversationState.COLLECTING, _ask_remaining(turn.catalog[0]),
                   [ClearScratch()])

    if answer is False:
        return _idle(turn, "入力を中止しました。")

    return _stay(turn, _yes_no())


def handle_confirm_overwrite(turn: Turn) -> Transition:
    answer = parse_yes_no(turn.text)

    if answer is True:
        return _go(turn, ConversationState.COLLECTING, _ask_remaining(turn.catalog[0]),
                   [ArchiveLedgerDay(), ClearScratch()],
                   failure_reply="記録の退避中にエラーが発生しました。")

    if answer is False:
        return _idle(turn, "入力を中止しました。登録済みの記録はそのままです。")

    return _stay(turn, _yes_no())


def handle_collecting(turn: Turn) -> Transition:
    is_valid, result = validate_quantity(turn.text)
    if not is_valid:
        return _stay(turn, result + _cancel_hint())

    catalog = turn.catalog
    done = {product for product, entry in turn.scratch.items() if entry.filled}
    remaining = [product for product in catalog if product not in done]

    if not remaining:
        return _go(turn, ConversationState.CONFIRM_COMMIT, _ask_commit(turn))

    current = remaining[0]
    effects = [RecordScratch(current, result)]
    remaining = [product for product in catalog if product not in done | {current}]

    if not remaining:
        return _go(turn, ConversationState.CONFIRM_COMMIT, _ask_commit(turn), effects)

    return _go(turn, ConversationState.COLLECTING, _ask_remaining(remaining[0]), effects)


def handle_confirm_commit(turn: Turn) -> Transition:
    answer = parse_yes_no(turn.text)

    if answer is True:
        filled = [
            (product, turn.scratch[product].quantity)
            for product in turn.catalog
            if product in turn.scratch and turn.scratch[product].filled
        ]
        if len(filled) < len(turn.catalog):
            return _stay(turn, f"{len(turn.catalog)}商品の入力が未完です。" + _cancel_hint())

        return _go(turn, ConversationState.IDLE,
                   "本日の発注内容を登録しました。\n\n{summary}",
                   [CommitLedger(tuple(filled)), ClearScratch()],
                   summarize=True,
                   failure_reply="登録中にエラーが発生しました。")

    if answer is False:
        return _idle(turn, "入力を中止しました。", [ClearScratch()])

    return _stay(turn, _yes_no())


# ---- Remaining quantity correction ----
def handle_confirm_correction_start(turn: Turn) -> Transition:
    answer = parse_yes_no(turn.text)

    if answer is True:
        return _go(turn, ConversationState.CHOOSE_CORRECTION_KIND,
                   f"訂正する項目を選んでください。"
                   f"（{format_choices([Config.KEYWORD_KIND_STOCK, Config.KEYWORD_KIND_ORDER])}）")

    if answer is False:
        return _idle(turn, "訂正を中止しました。")

    return _stay(turn, _yes_no())


def handle_choose_correction_kind(turn: Turn) -> Transition:
    is_valid, result = validate_correction_kind(turn.text)
    if not is_valid:
        return _stay(turn, result + _cancel_hint("訂正"))

    if result == Config.KEYWORD_KIND_STOCK:
        return _go(turn, ConversationState.CHOOSE_CORRECTION_TARGET, _choose_target(turn))
    return _go(turn, ConversationState.CHOOSE_ORDER_CORRECTION_TARGET, _choose_order_target(turn))


def _choose(turn: Turn, next_state: ConversationState, label: str) -> Transition:
    is_valid, result = validate_product_choice(turn.text, turn.catalog)
    if not is_valid:
        return _stay(turn, result + _cancel_hint("訂正"))

    return _go(turn, next_state, f"{result}の{label}を数字で入力してください。",
               [ClearScratch(), RecordScratch(result)])


def _collect_correction(turn: Turn, next_state: ConversationState, label: str) -> Transition:
    is_valid, result = validate_quantity(turn.text)
    if not is_valid:
        return _stay(turn, result + _cancel_hint("訂正"))

    target = _correction_target(turn)
    if target is None:
        return _idle(turn, "訂正する材料が見つかりません。最初からやり直してください。",
                     [ClearScratch()])

    return _go(turn, next_state,
               f"{target.product}の{label}を{result}に訂正します。よろしいですか？"
               f"（{Config.KEYWORD_YES}／{Config.KEYWORD_NO}）",
               [RecordScratch(target.product, result)])


def _confirm_correction(turn: Turn, column: int, label: str,
                        retry_state: ConversationState,
                        retry_prompt: Callable[[Turn, str], str]) -> Transition:
    answer = parse_yes_no(turn.text)

    if answer is True:
        target = _correction_target(turn)
        if target is None or not target.filled:
            return _idle(turn, "訂正する値が見つかりません。最初からやり直してください。",
                         [ClearScratch()])

        row = _find_row(turn, target.product)
        if row is None:
            return _idle(turn, f"{turn.business_date}の{target.product}の発注記録が見つかりません。",
                         [ClearScratch()])

        return _go(turn, ConversationState.IDLE,
                   f"{target.product}の{label}を訂正しました。",
                   [UpdateLedgerCell(row, column, target.quantity), ClearScratch()],
                   failure_reply="訂正中にエラーが発生しました。")

    if answer is False:
        return _go(turn, retry_state, retry_prompt(turn, "訂正をやり直します。"))

    return _stay(turn, _yes_no())


def handle_choose_correction_target(turn: Turn) -> Transition:
    return _choose(turn, ConversationState.CORRECTION_COLLECTING, "残数")


def handle_correction_collecting(turn: Turn) -> Transition:
    return _collect_correction(turn, ConversationState.CONFIRM_CORRECTION_COMMIT, "残数")


def handle_confirm_correction_commit(turn: Turn) -> Transition:
    return _confirm_correction(turn, COLUMN_REMAINING, "残数",
                               ConversationState.CHOOSE_CORRECTION_TARGET, _choose_target)


# ---- Order quantity correction ----
def handle_confirm_order_correction_start(turn: Turn) -> Transition:
    answer = parse_yes_no(turn.text)

    if answer is True:
        return _go(turn, ConversationState.CHOOSE_ORDER_CORRECTION_TARGET, _choose_order_target(turn))

    if answer is False:
        return _idle(turn, "訂正を中止しました。")

    return _stay(turn, _yes_no())


def handle_choose_order_correction_target(turn: Turn) -> Transition:
    return _choose(turn, ConversationState.ORDER_CORRECTION_COLLECTING, "発注数")


def handle_order_correction_collecting(turn: Turn) -> Transition:
    return _collect_correction(turn, ConversationState.CONFIRM_ORDER_CORRECTION_COMMIT, "発注数")


def handle_confirm_order_correction_commit(turn: Turn) -> Transition:
    return _confirm_correction(turn, COLUMN_ORDER, "発注数",
                               ConversationState.CHOOSE_ORDER_CORRECTION_TARGET,
                               _choose_order_target)


STATE_HANDLERS: Dict[ConversationState, Callable[[Turn], Transition]] = {
    ConversationState.IDLE: handle_idle,
    ConversationState.CONFIRM_START: handle_confirm_start,
    ConversationState.COLLECTING: handle_collecting,
    ConversationState.CONFIRM_OVERWRITE: handle_confirm_overwrite,
    ConversationState.CONFIRM_COMMIT: handle_confirm_commit,
    ConversationState.CONFIRM_CORRECTION_START: handle_confirm_correction_start,
    ConversationState.CHOOSE_CORRECTION_KIND: handle_choose_correction_kind,
    ConversationState.CHOOSE_CORRECTION_TARGET: handle_choose_correction_target,
    ConversationState.CORRECTION_COLLECTING: handle_correction_collecting,
    ConversationState.CONFIRM_CORRECTION_COMMIT: handle_confirm_correction_commit,
    ConversationState.CONFIRM_ORDER_CORRECTION_START: handle_confirm_order_correction_start,
    ConversationState.CHOOSE_ORDER_CORRECTION_TARGET: handle_choose_order_correction_target,
    ConversationState.ORDER_CORRECTION_COLLECTING: handle_order_correction_collecting,
    ConversationState.CONFIRM_ORDER_CORRECTION_COMMIT: handle_confirm_order_correction_commit,
}

_unhandled = set(ConversationState) - set(STATE_HANDLERS)
if _unhandled:
    raise RuntimeError(f"States without a handler: {sorted(s.name for s in _unhandled)}")


def transition(state: ConversationState, text: str, user_id: str, business_date: str,
               scratch: Dict[str, ScratchEntry] = None,
               ledger: Sequence[LedgerRow] = ()) -> Transition:
    """
    Decide the outcome of one chat turn

    Args:
        state: User's current state
        text: Incoming message text
        user_id: User sending the message
        business_date: Date the turn (or the running flow) applies to
        scratch: The user's active scratch entries for that date
        ledger: The user's ledger rows for that date

    Returns:
        Transition with the new state, effects to apply and the reply
    """
    turn = Turn(state, text, user_id, business_date, dict(scratch or {}), tuple(ledger))

    # Cancel wins over every state
    if normalize_text(text) == Config.KEYWORD_CANCEL:
        return _idle(turn, "入力を中止しました。", [ClearScratch()])

    return STATE_HANDLERS[state](turn)
