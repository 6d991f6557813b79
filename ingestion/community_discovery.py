"""Heuristics for growing the monitored community set.

Everything here is best effort: mention extraction, category guesses and
merch-potential estimates are crude keyword rules, kept as named constants
so they can be overridden or recalibrated.
"""

import re

from data_models.community import CommunityCategory

C = CommunityCategory

SUBREDDIT_MENTION = re.compile(r"r/([a-zA-Z0-9_]+)")

# Generic, utility or default subreddits that say nothing about a niche
COMMON_SUBREDDITS = frozenset(
    [
        "announcements", "all", "popular", "random", "blog", "admin", "help",
        "reddit", "pics", "funny", "askreddit", "todayilearned", "worldnews",
        "news", "videos", "gaming", "movies", "music", "aww", "science", "iama",
        "mildlyinteresting", "showerthoughts", "jokes", "gifs", "nottheonion",
        "earthporn", "oldschoolcool", "food", "diy", "space", "art", "gadgets",
        "sports", "documentaries", "listentothis", "history", "nosleep", "books",
        "creepy", "twoxchromosomes", "television", "photoshopbattles",
        "upliftingnews", "explainlikeimfive", "fitness", "getmotivated",
        "personalfinance", "dataisbeautiful",
    ]
)

CATEGORY_SUGGESTIONS: dict[CommunityCategory, list[str]] = {
    C.HOBBY: ["hobbies", "crafting", "diy", "maker"],
    C.PROFESSION: ["careerguidance", "jobs", "antiwork"],
    C.LIFESTYLE: ["simpleliving", "minimalism", "zerowaste"],
    C.FANDOM: ["fanart", "cosplay", "collectibles"],
    C.SPORTS: ["sportsbetting", "fantasyFootball", "mma", "nfl", "nba"],
    C.PETS: ["pets", "aww", "dogtraining", "cats", "aquariums"],
    C.FAMILY: ["parenting", "family", "marriage", "pregnant"],
    C.FOOD: ["cooking", "recipes", "mealprep", "baking", "slowcooking"],
    C.FITNESS: ["bodyweightfitness", "loseit", "gainit", "strength_training"],
    C.GAMING: ["pcgaming", "ps5", "nintendo", "indiegaming", "patientgamers"],
    C.CRAFTS: ["sewing", "leathercraft", "pottery", "jewelry", "beading"],
    C.OUTDOORS: ["campingandhiking", "survival", "bushcraft", "fishing", "overlanding"],
    C.MUSIC: ["wearethemusicmakers", "guitar", "bass", "piano", "synthesizers"],
    C.ART: ["digitalart", "painting", "drawing", "watercolor", "streetart"],
    C.TECH: ["homelab", "selfhosted", "mechanicalkeyboards", "buildapc"],
    C.OTHER: [],
}

# First matching pattern wins
CATEGORY_PATTERNS: list[tuple[CommunityCategory, re.Pattern]] = [
    (C.PROFESSION, re.compile(r"nurse|teacher|firefight|ems|truck|electric|plumb|carpent|weld|mechanic")),
    (C.PETS, re.compile(r"dog|cat|pet|aquarium|fish|bird|reptile|hamster|rabbit|chicken|bee")),
    (C.FAMILY, re.compile(r"dad|mom|parent|grandparent|family|pregnan|baby|toddler")),
    (C.CRAFTS, re.compile(r"crochet|knit|sew|quilt|embroider|craft|woodwork|leather|pottery")),
    (C.OUTDOORS, re.compile(r"fish|hunt|hik|camp|kayak|canoe|climb|backpack|outdoor|survival")),
    (C.FITNESS, re.compile(r"fit|gym|run|crossfit|yoga|lift|bodyweight|strength")),
    (C.FOOD, re.compile(r"cook|bak|bbq|grill|coffee|tea|beer|wine|homebrew|recipe")),
    (C.GAMING, re.compile(r"game|gaming|nintendo|playstation|xbox|pc|esport|stream")),
    (C.MUSIC, re.compile(r"guitar|drum|piano|bass|music|band|vinyl|audio")),
    (C.ART, re.compile(r"art|paint|draw|sketch|digital|photo|design")),
    (C.SPORTS, re.compile(r"nfl|nba|mlb|hockey|soccer|football|basketball|baseball")),
]

HIGH_MERCH_CATEGORIES = frozenset([C.PROFESSION, C.HOBBY, C.PETS, C.FAMILY, C.CRAFTS, C.OUTDOORS])
HIGH_MERCH_KEYWORDS = ("dad", "mom", "fishing", "hunting", "nurse", "teacher", "coffee", "dog", "cat", "craft")
LOW_MERCH_KEYWORDS = ("news", "politics", "advice", "help", "questions", "meta")

del C


def is_common_subreddit(name: str, denylist: frozenset[str] = COMMON_SUBREDDITS) -> bool:
    """Whether a subreddit is generic enough to skip."""
    return name.lower() in denylist


def extract_community_mentions(
    texts: list[str],
    exclude: set[str] | None = None,
    denylist: frozenset[str] = COMMON_SUBREDDITS,
) -> list[str]:
    """Find r/<name> mentions in free text.

    Args:
        texts: Titles, bodies or about pages to scan
        exclude: Names to leave out (compared lowercased), e.g. the source
        denylist: Generic subreddits to skip

    Returns:
        Lowercased names in first-seen order, without duplicates
    """
    seen = {name.lower() for name in (exclude or set())}
    found = []
    for text in texts:
        if not text:
            continue
        for match in SUBREDDIT_MENTION.finditer(text):
            name = match.group(1).lower()
            if name in seen:
                continue
            seen.add(name)
            if is_common_subreddit(name, denylist):
                continue
            found.append(name)
    return found


def categorize_subreddit(name: str) -> CommunityCategory:
    """Guess a category from the subreddit name (defaults to hobby)."""
    lowered = name.lower()
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(lowered):
            return category
    return CommunityCategory.HOBBY


def estimate_merch_potential(
    name: str,
    category: CommunityCategory | str | None = None,
    size: int | None = None,
) -> float:
    """Heuristic 0-1 merch potential for a community.

    Starts at 0.5, then adjusts for category, size (10k-500k members is
    the sweet spot) and name keywords.
    """
    score = 0.5

    if category and CommunityCategory(category) in HIGH_MERCH_CATEGORIES:
        score += 0.2

    if size:
        if 10_000 <= size <= 500_000:
            score += 0.15
        elif 5_000 <= size <= 1_000_000:
            score += 0.1
        elif size < 1_000:
            score -= 0.2
        elif size > 5_000_000:
            score -= 0.1

    lowered = name.lower()
    if any(kw in lowered for kw in HIGH_MERCH_KEYWORDS):
        score += 0.15
    if any(kw in lowered for kw in LOW_MERCH_KEYWORDS):
        score -= 0.2

    return max(0.0, min(1.0, score))


def suggest_communities_for_category(category: CommunityCategory | str) -> list[str]:
    """Known sibling subreddits for a category."""
    return list(CATEGORY_SUGGESTIONS.get(CommunityCategory(category), []))
