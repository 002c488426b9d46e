"""Core building blocks: configuration, logging and OAuth."""
