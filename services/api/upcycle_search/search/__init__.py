"""Search pipelines: category inference, ranking and the two query shapes."""
