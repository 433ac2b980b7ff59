"""Nostr key management and relay transport.

The utils layer sits in the middle of the package DAG, depending only on
[nostrinbox.models][nostrinbox.models]. It provides the cryptographic and
network primitives consumed by [nostrinbox.nips][nostrinbox.nips] and
[nostrinbox.services][nostrinbox.services].

Attributes:
    keys: Key loading from environment variables and the
        [KeyStore][nostrinbox.utils.keys.KeyStore] protocol with its
        nostr-sdk implementation.
    protocol: The [RelayClient][nostrinbox.utils.protocol.RelayClient]
        protocol and its nostr-sdk implementation.

Note:
    The utils layer has **zero** imports from ``nostrinbox.core`` or
    ``nostrinbox.services``.

Examples:
    ```python
    from nostrinbox.utils.keys import KeysConfig, LocalKeyStore
    from nostrinbox.utils.protocol import NostrRelayClient
    ```
"""
