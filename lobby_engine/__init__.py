"""
Lobby Engine - Lobby Service for Elimination Tournaments

Responsibilities:
- Group players into 10-player lobbies per round, with chill-zone priority
- Captain draft (PENDING -> DRAFTING -> PLAYING)
- Match settlement: losers lose a life, zero lives means elimination
- Tournament, player and application registries
- Lobby notifications over redis pub/sub
"""
