from __future__ import annotations

import argparse
import json
import logging
import os
import random
import sys
from collections import Counter
from typing import Dict, List, Sequence

from tqdm import tqdm

from catan_sandbox.engine.actions import dispatch
from catan_sandbox.engine.board import generate_board
from catan_sandbox.engine.config import RuleConfig
from catan_sandbox.engine.legal import legal_actions
from catan_sandbox.engine.rules import GameEngine
from catan_sandbox.engine.serialization import serialize_board
from catan_sandbox.engine.types import TRADEABLE_RESOURCES, ActionType, ResourceType
from catan_sandbox.service.autoplay import AutoPlayer, PriorityDecisionClient, RandomDecisionClient
from catan_sandbox.utils.repro import seed_everything

logger = logging.getLogger("catan_sandbox")

HELP_TEXT = """
Commands:
  help                         Show this help text
  state                        Show current game state summary
  tiles                        List land tiles (id, resource, number, robber)
  legal                        Show legal actions for the current player
  roll                         Roll dice
  town <node>                  Build town
  city <node>                  Build city
  road <edge> [free]           Build road
  robber <tile_id>             Move robber
  trade <give> <receive>       Trade with the bank or a harbor
  buy                          Buy a development card
  knight | roads               Play knight / road building
  plenty <res> <res>           Play year of plenty
  monopoly <res>               Play monopoly
  auto                         Let the bot finish the current turn
  end                          End turn
  quit                         Exit
""".strip()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resource_str(resources: Dict[ResourceType, int]) -> str:
    return ", ".join(f"{res.value}:{resources[res]}" for res in TRADEABLE_RESOURCES)


def _print_state(engine: GameEngine) -> None:
    state = engine.state
    print(f"Turn {state.turn} | Player {state.current_player} | Phase {state.phase.value}")
    if state.last_roll is not None:
        print(f"Last roll: {state.last_roll.total}")
    if state.winner is not None:
        print(f"Winner: Player {state.winner}")
    print(f"Robber tile: {state.board.robber_tile()}")
    for player in state.players:
        print(
            f"Player {player.player_id} | VP {player.victory_points} | "
            f"Roads {state.count_roads(player.player_id)} | Cards {len(player.dev_cards)} | "
            f"Resources: {_resource_str(player.resources)}"
        )


def _print_tiles(engine: GameEngine) -> None:
    for tile in engine.board.land_tiles():
        robber = "robber" if tile.has_robber else ""
        print(f"Tile {tile.tile_id} | {tile.resource.value} | {tile.number_token or '-'} {robber}".strip())


def _command_action(parts: List[str], player_id: int) -> Dict[str, object] | None:
    cmd, args = parts[0].lower(), parts[1:]
    simple = {
        "roll": ActionType.ROLL_DICE,
        "buy": ActionType.BUY_DEV_CARD,
        "knight": ActionType.PLAY_KNIGHT,
        "roads": ActionType.PLAY_ROAD_BUILDING,
        "end": ActionType.END_TURN,
    }
    payload: Dict[str, object] = {"player_id": player_id}
    if cmd in simple:
        return {"type": simple[cmd].value, "payload": payload}
    if cmd == "town":
        payload["node_id"] = int(args[0])
        return {"type": ActionType.BUILD_TOWN.value, "payload": payload}
    if cmd == "city":
        payload["node_id"] = int(args[0])
        return {"type": ActionType.BUILD_CITY.value, "payload": payload}
    if cmd == "road":
        payload.update(edge_id=int(args[0]), free=len(args) > 1 and args[1] == "free")
        return {"type": ActionType.BUILD_ROAD.value, "payload": payload}
    if cmd == "robber":
        payload["hex_id"] = int(args[0])
        return {"type": ActionType.MOVE_ROBBER.value, "payload": payload}
    if cmd == "trade":
        payload.update(give=args[0], receive=args[1])
        return {"type": ActionType.HARBOR_TRADE.value, "payload": payload}
    if cmd == "plenty":
        payload.update(resource1=args[0], resource2=args[1])
        return {"type": ActionType.PLAY_YEAR_OF_PLENTY.value, "payload": payload}
    if cmd == "monopoly":
        payload["resource"] = args[0]
        return {"type": ActionType.PLAY_MONOPOLY.value, "payload": payload}
    return None


def cmd_play(args: argparse.Namespace) -> int:
    engine = GameEngine(args.players, seed=args.seed, config=RuleConfig.from_env())
    bot = AutoPlayer(PriorityDecisionClient(random.Random(args.seed)))
    print("Catan sandbox - type 'help' for commands")

    while True:
        prompt = f"P{engine.current_player}:{engine.state.phase.value}> "
        try:
            raw = input(prompt).strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting")
            return 0
        if not raw:
            continue
        parts = raw.split()
        cmd = parts[0].lower()
        if cmd == "quit":
            return 0
        if cmd == "help":
            print(HELP_TEXT)
        elif cmd == "state":
            _print_state(engine)
        elif cmd == "tiles":
            _print_tiles(engine)
        elif cmd == "legal":
            for action in legal_actions(engine.state, engine.current_player):
                print(f"- {action.action_type.value} {action.payload}")
        elif cmd == "auto":
            for step in bot.play_turn(engine):
                print(f"- {step.action.action_type.value} {step.action.payload}")
        else:
            try:
                action = _command_action(parts, engine.current_player)
            except (IndexError, ValueError):
                print(f"Bad arguments for {cmd!r}; see 'help'")
                continue
            if action is None:
                print(f"Unknown command {cmd!r}; see 'help'")
                continue
            result = dispatch(engine, action)
            if "error" in result:
                print(f"Error: {result['error']}")
            else:
                print(f"OK: {result['event']['type']} {result['event']['details']}")
        if engine.winner is not None:
            print(f"Player {engine.winner} wins!")
            return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    seed_everything(args.seed)
    config = RuleConfig.from_env()
    wins: Counter = Counter()
    turns: List[int] = []
    for game_idx in tqdm(range(args.games), desc="games", disable=args.quiet):
        game_seed = args.seed + game_idx
        engine = GameEngine(args.players, seed=game_seed, config=config)
        rng = random.Random(game_seed)
        client = RandomDecisionClient(rng) if args.client == "random" else PriorityDecisionClient(rng)
        player = AutoPlayer(client)
        while engine.winner is None and engine.state.turn <= args.max_turns:
            player.play_turn(engine)
        wins[engine.winner if engine.winner is not None else "none"] += 1
        turns.append(engine.state.turn)
        logger.debug("game %d finished on turn %d, winner %s", game_idx, engine.state.turn, engine.winner)

    summary = {
        "games": args.games,
        "wins": {str(key): value for key, value in sorted(wins.items(), key=lambda kv: str(kv[0]))},
        "avg_turns": sum(turns) / len(turns) if turns else 0.0,
    }
    print(json.dumps(summary, indent=2))
    return 0


def cmd_board(args: argparse.Namespace) -> int:
    board = generate_board(args.radius, random.Random(args.seed), harbors=not args.no_harbors)
    print(json.dumps(serialize_board(board), indent=2 if args.pretty else None))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("catan_sandbox.web.server:app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catan-sandbox", description="Catan-style board game sandbox")
    parser.add_argument(
        "--log-level",
        default=os.getenv("CATAN_LOG_LEVEL", "INFO"),
        help="Logging level (default from CATAN_LOG_LEVEL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    play = sub.add_parser("play", help="Play interactively in the terminal")
    play.add_argument("--players", type=int, default=4)
    play.add_argument("--seed", type=int, default=None)
    play.set_defaults(func=cmd_play)

    simulate = sub.add_parser("simulate", help="Run bot self-play games")
    simulate.add_argument("--games", type=int, default=10, help="Number of games to play")
    simulate.add_argument("--players", type=int, default=4)
    simulate.add_argument("--seed", type=int, default=0)
    simulate.add_argument("--max-turns", type=int, default=500, help="Abandon a game after this many turns")
    simulate.add_argument("--client", choices=["priority", "random"], default="priority")
    simulate.add_argument("--quiet", action="store_true", help="Hide the progress bar")
    simulate.set_defaults(func=cmd_simulate)

    board = sub.add_parser("board", help="Print a generated board as JSON")
    board.add_argument("--radius", type=int, default=2)
    board.add_argument("--seed", type=int, default=None)
    board.add_argument("--no-harbors", action="store_true")
    board.add_argument("--pretty", action="store_true")
    board.set_defaults(func=cmd_board)

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
