"""Account orchestration and external collaborator interfaces."""
