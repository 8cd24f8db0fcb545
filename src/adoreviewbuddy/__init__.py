"""adoreviewbuddy — Azure DevOps pull request review threads for AI coding agents."""
