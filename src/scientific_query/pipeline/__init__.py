"""Scientific query pipeline: staged orchestration and the service facade."""
