"""Best-ball aggregation.

Pure functions over score records: nothing here touches the database, so a
full recompute after every submission is just a call over the current rows.
Records only need ``player_id``, ``hole_number``, ``score`` and
``handicap_strokes`` attributes.
"""

from typing import Callable, Dict, Iterable, List, Optional, Tuple


def net_score(score: Optional[int], handicap_strokes: Optional[int] = 0) -> Optional[int]:
    """Gross minus handicap strokes; ``None`` while the hole is unrecorded."""
    if score is None:
        return None
    return score - (handicap_strokes or 0)


def best_nets(records: Iterable, team_of: Callable[[int], Optional[int]]) -> Dict[Tuple[int, int], Tuple[int, List[int]]]:
    """Lowest net per (team_id, hole_number) and the player ids holding it."""
    best: Dict[Tuple[int, int], Tuple[int, List[int]]] = {}
    for rec in records:
        net = net_score(rec.score, rec.handicap_strokes)
        if net is None:
            continue
        team_id = team_of(rec.player_id)
        if team_id is None:
            continue
        key = (team_id, rec.hole_number)
        current = best.get(key)
        if current is None or net < current[0]:
            best[key] = (net, [rec.player_id])
        elif net == current[0]:
            current[1].append(rec.player_id)
    return best


def _holes_seen(records: Iterable) -> List[int]:
    return sorted({rec.hole_number for rec in records})


def _team_hole_value(best, team_id, hole, count_unplayed_as_zero):
    entry = best.get((team_id, hole))
    if entry is not None:
        return entry[0]
    return 0 if count_unplayed_as_zero else None


def compute_team_totals(records: Iterable, team_of: Callable[[int], Optional[int]], team1_id: int, team2_id: int,
                        count_unplayed_as_zero: bool = False) -> Tuple[int, int]:
    """Return ``(team1_score, team2_score)`` for one match.

    Each hole adds the team's lowest net score. A hole the team has not
    recorded is skipped, or counted as 0 strokes when
    ``count_unplayed_as_zero`` restores the legacy behaviour.
    """
    records = list(records)
    best = best_nets(records, team_of)
    totals = []
    for team_id in (team1_id, team2_id):
        total = 0
        for hole in _holes_seen(records):
            value = _team_hole_value(best, team_id, hole, count_unplayed_as_zero)
            if value is not None:
                total += value
        totals.append(total)
    return totals[0], totals[1]


def build_scorecard(records: Iterable, team_of: Callable[[int], Optional[int]], team1_id: int, team2_id: int,
                    count_unplayed_as_zero: bool = False) -> dict:
    """Per-hole best-ball breakdown plus holes won/halved for both teams."""
    records = list(records)
    best = best_nets(records, team_of)
    holes = []
    summary = {
        'team1_holes_won': 0,
        'team2_holes_won': 0,
        'holes_halved': 0,
        'team1_holes_played': 0,
        'team2_holes_played': 0,
    }
    for hole in _holes_seen(records):
        t1 = _team_hole_value(best, team1_id, hole, count_unplayed_as_zero)
        t2 = _team_hole_value(best, team2_id, hole, count_unplayed_as_zero)
        # Winner only when both teams actually recorded the hole
        winner = None
        if (team1_id, hole) in best and (team2_id, hole) in best:
            if t1 < t2:
                winner = 'team1'
                summary['team1_holes_won'] += 1
            elif t2 < t1:
                winner = 'team2'
                summary['team2_holes_won'] += 1
            else:
                winner = 'halved'
                summary['holes_halved'] += 1
        if t1 is not None:
            summary['team1_holes_played'] += 1
        if t2 is not None:
            summary['team2_holes_played'] += 1
        holes.append({
            'hole_number': hole,
            'team1_net': t1,
            'team2_net': t2,
            'team1_best_ball_player_ids': sorted(best.get((team1_id, hole), (None, []))[1]),
            'team2_best_ball_player_ids': sorted(best.get((team2_id, hole), (None, []))[1]),
            'winner': winner,
        })
    team1_total, team2_total = compute_team_totals(records, team_of, team1_id, team2_id, count_unplayed_as_zero)
    summary['team1_score'] = team1_total
    summary['team2_score'] = team2_total
    return {'holes': holes, 'summary': summary}
