# dmchat/core/reactions.py
from typing import Dict, Mapping


def apply_reaction(existing: Mapping[str, str], user_id: str, emoji: str) -> Dict[str, str]:
    """
    Apply one user's emoji reaction to a message's reaction set.

    The set maps user id to emoji, so a user holds at most one reaction.

    - no entry for the user: the reaction is added
    - same emoji again: the reaction is removed (toggle off)
    - different emoji: the user's entry is replaced in place

    Returns a new mapping; ``existing`` is left untouched.
    """
    reactions = dict(existing)
    current = reactions.get(user_id)

    if current is None:
        reactions[user_id] = emoji
    elif current == emoji:
        del reactions[user_id]
    else:
        reactions[user_id] = emoji

    return reactions
