"""Business domains: library, ranking, queue, playback and radio."""
