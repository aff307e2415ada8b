"""Page gatherers that observe a DevTools session during one page load."""
