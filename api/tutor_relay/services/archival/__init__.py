"""Archive of approved question/answer pairs."""
