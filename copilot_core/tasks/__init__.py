"""Background task utilities (request models, runner, team creation workflow)."""
