"""Nostr key management and the local cryptographic key store.

Loads the private key from an environment variable (nsec1 bech32 or hex)
and exposes the cryptographic primitives the messaging core needs through
the [KeyStore][nostrinbox.utils.keys.KeyStore] protocol. The core never
touches raw key material; it only calls these methods.

Warning:
    Private keys must **never** be stored in configuration files, source
    code, or logged to any output. Always use environment variables or a
    secret manager.

See Also:
    [EnvelopeDecryptor][nostrinbox.nips.envelope.EnvelopeDecryptor]:
        Uses ``nip04_decrypt`` and ``unwrap``.
    [Messenger.send()][nostrinbox.services.messages.Messenger.send]:
        Uses ``wrap_private_message``, ``nip04_encrypt`` and ``sign_event``.

Examples:
    ```python
    import os

    os.environ["PRIVATE_KEY"] = "nsec1..."  # pragma: allowlist secret
    key_store = LocalKeyStore(load_keys_from_env("PRIVATE_KEY"))
    print(key_store.public_key())
    ```
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

from nostr_sdk import (
    EventBuilder,
    Keys,
    Kind,
    NostrSigner,
    PublicKey,
    Tag,
    UnwrappedGift,
    gift_wrap,
    nip04_decrypt,
    nip04_encrypt,
)
from pydantic import BaseModel, Field, model_validator

from nostrinbox.models.event import Event, Rumor, Unwrapped


if TYPE_CHECKING:
    from collections.abc import Sequence


ENV_PRIVATE_KEY = "PRIVATE_KEY"  # pragma: allowlist secret  # Default env var name


def load_keys_from_env(env_var: str) -> Keys:
    """Load Nostr keys from an environment variable.

    Args:
        env_var: Name of the environment variable containing the private key.

    Returns:
        A ``nostr_sdk.Keys`` instance holding the private and public key.

    Raises:
        ValueError: If the environment variable is not set or is empty.
        nostr_sdk.NostrError: If the key value is malformed.
    """
    value = os.getenv(env_var)

    if not value:
        raise ValueError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )

    return Keys.parse(value)


class KeysConfig(BaseModel):
    """Pydantic model that loads Nostr keys from an environment variable.

    When the variable is unset, ``keys`` stays ``None`` unless ``required``
    is True. Services reject operations that need an identity with
    [MissingIdentityError][nostrinbox.core.exceptions.MissingIdentityError]
    before any network call.

    Attributes:
        keys_env: Environment variable name for the private key.
        required: Fail config validation when the variable is unset.
        keys: Loaded ``nostr_sdk.Keys`` instance, or None.

    Warning:
        ``keys`` holds a live private key. Do not serialize this model.
    """

    model_config = {"arbitrary_types_allowed": True}

    keys_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable name for private key",
    )
    required: bool = Field(default=False, description="Fail when the key is missing")
    keys: Keys | None = Field(default=None, description="Keys loaded from keys_env")

    @model_validator(mode="before")
    @classmethod
    def _load_keys_from_env(cls, data: Any) -> Any:
        """Populate ``keys`` from the environment variable when available."""
        if isinstance(data, dict) and data.get("keys") is None:
            data = dict(data)
            env_var = data.get("keys_env", ENV_PRIVATE_KEY)
            if data.get("required") or os.getenv(env_var):
                data["keys"] = load_keys_from_env(env_var)
        return data


# ---------------------------------------------------------------------------
# Key store protocol
# ---------------------------------------------------------------------------


class WrappedPair(NamedTuple):
    """The two gift wraps published for one outgoing private message.

    Attributes:
        recipient: Wrap encrypted to the conversation partner.
        backup: Wrap encrypted to the sender, so the sender can read the
            message back later. Its rumor carries the partner ``p`` tag.
    """

    recipient: Event
    backup: Event


@runtime_checkable
class KeyStore(Protocol):
    """Cryptographic operations bound to the local identity."""

    def public_key(self) -> str:
        """Hex public key of the local identity."""
        ...

    async def nip04_encrypt(self, peer: str, plaintext: str) -> str: ...

    async def nip04_decrypt(self, peer: str, ciphertext: str) -> str: ...

    async def unwrap(self, event: Event) -> Unwrapped:
        """Open a gift wrap addressed to the local identity.

        Raises any exception when the wrap is not decryptable locally.
        """
        ...

    async def wrap_private_message(self, receiver: str, content: str) -> WrappedPair: ...

    async def sign_event(self, kind: int, content: str, tags: Sequence[Sequence[str]]) -> Event: ...


class LocalKeyStore:
    """[KeyStore][nostrinbox.utils.keys.KeyStore] backed by in-memory ``nostr_sdk.Keys``."""

    def __init__(self, keys: Keys) -> None:
        self._keys = keys
        self._signer = NostrSigner.keys(keys)
        self._public_key = keys.public_key()
        self._public_key_hex = self._public_key.to_hex()

    @classmethod
    def from_config(cls, config: KeysConfig) -> LocalKeyStore | None:
        """Build a key store from config, or None when no key is configured."""
        if config.keys is None:
            return None
        return cls(config.keys)

    def public_key(self) -> str:
        return self._public_key_hex

    async def nip04_encrypt(self, peer: str, plaintext: str) -> str:
        return nip04_encrypt(self._keys.secret_key(), PublicKey.parse(peer), plaintext)

    async def nip04_decrypt(self, peer: str, ciphertext: str) -> str:
        return nip04_decrypt(self._keys.secret_key(), PublicKey.parse(peer), ciphertext)

    async def unwrap(self, event: Event) -> Unwrapped:
        gift = await UnwrappedGift.from_gift_wrap(self._signer, event.to_nostr())
        return Unwrapped(sender=gift.sender().to_hex(), rumor=Rumor.from_nostr(gift.rumor()))

    async def wrap_private_message(self, receiver: str, content: str) -> WrappedPair:
        receiver_pk = PublicKey.parse(receiver)
        # One rumor, sealed twice: to the partner and back to ourselves
        rumor = EventBuilder.private_msg_rumor(receiver_pk, content).build(self._public_key)
        recipient = await gift_wrap(self._signer, receiver_pk, rumor, None)
        backup = await gift_wrap(self._signer, self._public_key, rumor, None)
        return WrappedPair(recipient=Event.from_nostr(recipient), backup=Event.from_nostr(backup))

    async def sign_event(self, kind: int, content: str, tags: Sequence[Sequence[str]]) -> Event:
        builder = EventBuilder(Kind(kind), content).tags([Tag.parse(list(t)) for t in tags])
        return Event.from_nostr(builder.sign_with_keys(self._keys))
