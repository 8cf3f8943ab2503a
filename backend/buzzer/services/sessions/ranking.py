from typing import Any, Dict, List

from buzzer.models import Session


def rank_buzzers(session: Session) -> List[Dict[str, Any]]:
    """Order everyone who buzzed this round, earliest first.

    Rank 1 is the earliest press. Equal timestamps fall back to the order
    the engine accepted the presses in. ``elapsedMs`` is measured from the
    round start and is only available while the round is live.
    """
    pressed = [p for p in session.players.values() if p.buzzer_pressed]
    pressed.sort(key=lambda p: (p.buzzer_timestamp, p.buzz_seq or 0))
    start = session.question_start_time
    ranking = []
    for rank, player in enumerate(pressed, start=1):
        elapsed = None
        if start is not None and player.buzzer_timestamp is not None:
            elapsed = max(0.0, player.buzzer_timestamp - start)
        ranking.append({
            'playerId': player.id,
            'name': player.name,
            'rank': rank,
            'timestamp': player.buzzer_timestamp,
            'elapsedMs': elapsed,
        })
    return ranking
