"""Call planning, credential handling, backend dispatch and output cleaning."""

from .backend import BackendCall, BackendReply, TextGenerationBackend, WatsonxTextBackend
from .credentials import CredentialCache, IAMTokenIssuer, IssuedToken, shared_credential_cache
from .dispatcher import DispatchResult, GenerationDispatcher, compose_input
from .normalize import clean_generation, normalize_generations
from .plan import build_call_plan, params_for_index, resolve_base_params

__all__ = [
    "BackendCall",
    "BackendReply",
    "CredentialCache",
    "DispatchResult",
    "GenerationDispatcher",
    "IAMTokenIssuer",
    "IssuedToken",
    "TextGenerationBackend",
    "WatsonxTextBackend",
    "build_call_plan",
    "clean_generation",
    "compose_input",
    "normalize_generations",
    "params_for_index",
    "resolve_base_params",
    "shared_credential_cache",
]
