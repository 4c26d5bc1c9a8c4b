import random

# Word lists for friendly lobby names
ADJECTIVES = [
    'swift', 'brave', 'mighty', 'golden', 'silver', 'crimson', 'azure', 'emerald',
    'fierce', 'noble', 'royal', 'cosmic', 'stellar', 'radiant', 'frost', 'shadow',
    'mystic', 'ancient', 'iron', 'steel', 'blazing', 'eternal', 'savage', 'cunning',
    'daring', 'fearless', 'valiant', 'heroic', 'arcane', 'molten', 'silent', 'wicked'
]

NOUNS = [
    'dragon', 'phoenix', 'griffin', 'titan', 'warden', 'champion', 'knight', 'ronin',
    'sentinel', 'guardian', 'ranger', 'hunter', 'vanguard', 'legion', 'falcon', 'raven',
    'wolf', 'bear', 'tiger', 'panther', 'viper', 'scorpion', 'kraken', 'leviathan',
    'colossus', 'juggernaut', 'tempest', 'cyclone', 'golem', 'wyvern', 'harpy', 'basilisk'
]

CLASH_WORDS = [
    'clash', 'duel', 'battle', 'showdown', 'bout', 'brawl', 'rumble', 'skirmish',
    'siege', 'raid', 'gambit', 'standoff'
]


def generate_lobby_name(round_num: int, rng: random.Random = None) -> str:
    """Friendly lobby name like 'r2-steel-wolf-duel'."""
    rng = rng or random
    adj = rng.choice(ADJECTIVES)
    noun = rng.choice(NOUNS)
    word = rng.choice(CLASH_WORDS)
    return f"r{round_num}-{adj}-{noun}-{word}"
