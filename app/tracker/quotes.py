from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class Quote:
    text: str
    author: str | None = None
    featured: bool = False


# Fixed quotes shown across the app; exactly one is featured.
PRIMARY_QUOTES: tuple[Quote, ...] = (
    Quote("Leadership isn't about being perfect. It's about being present.", featured=True),
    Quote("Leadership is a dare, and the dare is, are you willing to show up?"),
    Quote("Leaders show up whether they feel like it or not."),
    Quote("Leaders keep going when the going gets tough."),
    Quote("Real leadership begins where comfort ends."),
    Quote(
        "It's about showing up when it's hardest, listening when it's quietest, "
        "and standing tall when others shrink."
    ),
    Quote("True leaders don't seek power, they offer strength."),
    Quote("Internal leadership is where it starts."),
    Quote(
        "Leadership is about making others better as a result of your presence "
        "and making sure that impact lasts in your absence."
    ),
    Quote("A leader is one who knows the way, goes the way, and shows the way."),
    Quote(
        "A leader is best when people barely know he exists. When his work is done, "
        "his aim fulfilled, they will say, we did it ourselves.",
        author="Lao Tzu",
    ),
    Quote("A leader is someone who demonstrates what's possible."),
    Quote(
        "Leadership isn't about having all the answers. It's about being confident, "
        "decisive, and having the courage to go forth and do something."
    ),
    Quote(
        "The highest form of leadership is one in which a leader raises up other leaders, "
        "not as an accident, but as a result of conscious effort."
    ),
    Quote("80% of success is showing up."),
)

# Login page background; kept short enough to scatter around the form.
SHORT_QUOTES: tuple[Quote, ...] = (
    Quote("80% of success is showing up."),
    Quote("Leaders show up whether they feel like it or not."),
    Quote("Real leadership begins where comfort ends."),
    Quote("True leaders don't seek power, they offer strength."),
    Quote("Internal leadership is where it starts."),
    Quote("Leaders keep going when the going gets tough."),
    Quote("Earn your leadership every day.", author="Michael Jordan"),
    Quote("The servant-leader is servant first.", author="Robert K. Greenleaf"),
    Quote("A leader is admired, a boss is feared."),
    Quote("You manage things; you lead people.", author="Grace Hopper"),
    Quote("To lead people, walk beside them.", author="Lao Tzu"),
    Quote("Lead from the heart, not the head."),
    Quote("Anyone can hold the helm when the sea is calm.", author="Publilius Syrus"),
    Quote("Where there is no vision, the people perish.", author="Proverbs 29:18"),
    Quote("Leaders don't create followers, they create more leaders.", author="Tom Peters"),
    Quote("Leadership and learning are indispensable to each other.", author="John F. Kennedy"),
    Quote("The supreme quality of leadership is integrity.", author="Eisenhower"),
    Quote("Innovation distinguishes between a leader and a follower.", author="Steve Jobs"),
    Quote("Leadership is the capacity to translate vision into reality.", author="Warren Bennis"),
    Quote("A leader is someone who demonstrates what's possible."),
    Quote("Leadership is lifting a person's vision to high sights.", author="Peter Drucker"),
    Quote("The key to successful leadership is influence, not authority.", author="Ken Blanchard"),
    Quote("You don't have to hold a position in order to be a leader.", author="Henry Ford"),
    Quote("Great leaders don't set out to be a leader. They set out to make a difference."),
)


def featured_quote() -> Quote:
    return next(q for q in PRIMARY_QUOTES if q.featured)


def random_quotes(count: int, *, exclude_featured: bool = False, rng: random.Random | None = None) -> list[Quote]:
    pool = [q for q in PRIMARY_QUOTES if not (exclude_featured and q.featured)]
    rng = rng or random.Random()
    return rng.sample(pool, min(count, len(pool)))


def daily_short_quotes(count: int, *, today: date | None = None) -> list[Quote]:
    """Same selection for everyone on a given calendar day; changes at midnight."""
    today = today or date.today()
    rng = random.Random(today.year * 10000 + today.month * 100 + today.day)
    shuffled = list(SHORT_QUOTES)
    rng.shuffle(shuffled)
    return shuffled[: min(count, len(shuffled))]
