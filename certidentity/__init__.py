"""Map verified OIDC identity tokens to code-signing certificate identities."""

__version__ = "0.1.0"
__all__ = ["base", "buildkite", "ctl", "github", "gitlabcom", "identity", "kubernetes"]