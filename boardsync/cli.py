"""
Command-line access to a board: print it, or move a card or column through
the same drop pipeline the board view uses.

    boardsync show [--board ID]
    boardsync move CARD COLUMN INDEX
    boardsync move-column COLUMN INDEX
"""
import argparse
import asyncio
import sys

from .config import Config, setup_logging
from .errors import BoardSyncError
from .schema import DragKind, DropEvent, coerce_id
from .session import BoardSession


def _print_board(session: BoardSession, board_id=None) -> None:
    boards = session.cache.boards([board_id] if board_id is not None else None)
    for bid, columns in boards.items():
        print(f"Board {bid}")
        for column in columns:
            cards = session.cache.column_cards(column.column_id)
            print(f"  [{column.order}] {column.name or column.column_id} ({len(cards)})")
            for card in cards:
                print(f"      {card.order}. {card.title}  #{card.card_id}")


def _card_drop(session: BoardSession, card_id, column_id, index: int) -> DropEvent:
    card = session.cache.card(card_id)
    if card is None or not card.visible:
        raise BoardSyncError(f"Unknown card {card_id!r}")
    source = [c.card_id for c in session.cache.column_cards(card.column_id)]
    return DropEvent(card_id, card.column_id, source.index(card_id), column_id, index)


def _column_drop(session: BoardSession, column_id, index: int) -> DropEvent:
    column = session.cache.column(column_id)
    if column is None or not column.visible:
        raise BoardSyncError(f"Unknown column {column_id!r}")
    siblings = [c.column_id for c in session.cache.board_columns(column.board_id)]
    return DropEvent(
        column_id, column.board_id, siblings.index(column_id),
        column.board_id, index, kind=DragKind.COLUMN,
    )


async def run(args: argparse.Namespace, config: Config) -> int:
    session = BoardSession.from_config(
        config, notify=lambda ok, message: print(("OK: " if ok else "FAILED: ") + message)
    )
    try:
        await session.refresh()
        if args.command == "show":
            _print_board(session, coerce_id(args.board) if args.board else None)
            return 0

        if args.command == "move":
            event = _card_drop(session, coerce_id(args.card), coerce_id(args.column), args.index)
        else:
            event = _column_drop(session, coerce_id(args.column), args.index)

        outcome = await session.drop(event)
        if outcome.noop:
            print("Nothing to do")
        if outcome.consistency is not None:
            print(f"WARNING: {outcome.consistency}")
        return 0 if outcome.ok else 1
    finally:
        if session.api is not None:
            session.api.close()


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="boardsync: kanban reorder client")
    ap.add_argument("--config", default=None, help="Path to boardsync.yaml")
    ap.add_argument("--api-url", default=None, help="Backend base URL (overrides config)")
    ap.add_argument("--policy", default=None, help="Rollback policy: compensate | refetch | local")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print columns and cards in order")
    show.add_argument("--board", default=None)

    move = sub.add_parser("move", help="Move a card to COLUMN at INDEX")
    move.add_argument("card")
    move.add_argument("column")
    move.add_argument("index", type=int)

    move_column = sub.add_parser("move-column", help="Move a column to INDEX within its board")
    move_column.add_argument("column")
    move_column.add_argument("index", type=int)

    args = ap.parse_args(argv)

    try:
        config = Config.load(args.config)
        # CLI overrides
        if args.api_url:
            config.api_url = args.api_url
        if args.policy:
            config.rollback_policy = args.policy
        if args.verbose:
            config.log_level = "DEBUG"
        config.validate()
        setup_logging(config.log_level)
        return asyncio.run(run(args, config))
    except BoardSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
