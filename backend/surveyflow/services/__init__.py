"""Business logic of the survey response flow."""
