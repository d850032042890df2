#!/usr/bin/env python3
from dataclasses import dataclass, field
from secrets import token_bytes
from typing import Callable, Dict, List, Tuple
from util import chunkify, ecb_decrypt, ecb_encrypt, pad_pkcs7, unpad_pkcs7

"""
ECB cut-and-paste

Write a k=v parsing routine, as if for a structured cookie, that turns

foo=bar&baz=qux&zap=zazzle

into {foo: 'bar', baz: 'qux', zap: 'zazzle'}, and a profile_for() function that encodes a user profile in that
format given an email address:

email=foo@bar.com&uid=10&role=user

profile_for() should not allow encoding metacharacters (& and =). Eat them, quote them, whatever you want to do,
but don't let people set their email address to "foo@bar.com&role=admin".

Generate a random AES key, then encrypt the encoded user profile under the key and "provide" that to the
"attacker". Using only the user input to profile_for() (as an oracle to generate "valid" ciphertexts) and the
ciphertexts themselves, make a role=admin profile.
"""

# AES-128
BLOCK_SIZE = 16

METACHARACTERS = "&="


def strip_metacharacters(s: str) -> str:
    """
    >>> strip_metacharacters("foo@bar.com&role=admin")
    'foo@bar.comroleadmin'
    """
    for c in METACHARACTERS:
        s = s.replace(c, "")
    return s


def encode_kv(pairs: List[Tuple[str, str]]) -> str:
    """
    Eat any & and = in keys and values, then join them up as k=v pairs separated by &

    >>> encode_kv([("KeyA", "ValA"), ("KeyB", "ValB"), ("KeyC=A&KeyB=B", "ValC=A&ValB=B")])
    'KeyA=ValA&KeyB=ValB&KeyCAKeyBB=ValCAValBB'
    >>> encode_kv([])
    ''
    """
    return "&".join(f"{strip_metacharacters(k)}={strip_metacharacters(v)}" for k, v in pairs)


def decode_kv(kv: str) -> Dict[str, str]:
    """
    Split on & and then on =. Anything that isn't a k=v pair is skipped, and the last of a duplicated key wins

    >>> decode_kv("foo=bar&baz=qux&zap=zazzle")
    {'foo': 'bar', 'baz': 'qux', 'zap': 'zazzle'}
    >>> decode_kv("role=user&junk&role=admin")
    {'role': 'admin'}
    >>> decode_kv("")
    {}
    """
    profile: Dict[str, str] = {}
    for pair in kv.split("&"):
        parts = pair.split("=")
        if len(parts) < 2:
            continue
        profile[parts[0]] = parts[1]
    return profile


def profile_for(email: str, uid: int = 10, role: str = "user") -> str:
    """
    >>> profile_for("foo@bar.com")
    'email=foo@bar.com&uid=10&role=user'

    >>> profile_for("foo@bar.com&role=admin")
    'email=foo@bar.comroleadmin&uid=10&role=user'
    """
    return encode_kv([("email", email), ("uid", str(uid)), ("role", role)])


@dataclass(frozen=True)
class ProfileOracle:
    key: bytes = field(default_factory=lambda: token_bytes(BLOCK_SIZE), repr=False)
    verbose: bool = False

    def encrypt(self, email: str) -> bytes:
        """
        Serialize email into a profile, encrypt it using AES-128 ECB, and return it
        """
        profile = profile_for(email)
        ct = ecb_encrypt(pad_pkcs7(profile.encode(), BLOCK_SIZE), key=self.key)
        if self.verbose:
            print(f"Encrypt: {email!r} --> {profile!r} --> {ct!r}")
        return ct

    def decrypt(self, encrypted_profile: bytes) -> Dict[str, str]:
        """
        Decrypt using AES-128 ECB and parse the profile. Not available to the attacker.

        >>> oracle = ProfileOracle()
        >>> oracle.decrypt(oracle.encrypt("foo@bar.com"))
        {'email': 'foo@bar.com', 'uid': '10', 'role': 'user'}
        """
        pt = unpad_pkcs7(ecb_decrypt(encrypted_profile, key=self.key), BLOCK_SIZE).decode()
        profile = decode_kv(pt)
        if self.verbose:
            print(f"Decrypt: {encrypted_profile!r} --> {pt!r} --> {profile}")
        return profile


def aligned_email_length(block_size: int = BLOCK_SIZE) -> int:
    """
    How long an email has to be for "email=<email>&uid=10&role=" to end on a block boundary, leaving the role's
    value alone in the last block

    >>> aligned_email_length()
    13
    """
    return -len(profile_for("", role="")) % block_size


def craft_profile_ct(oracle: Callable[[str], bytes], role: str = "admin", email: str = "aaa@bbccdd.ee") -> bytes:
    """
    Forge a ciphertext of a profile for email with the given role, using nothing but the encryption oracle

    >>> oracle = ProfileOracle()
    >>> profile = craft_profile_ct(oracle=oracle.encrypt, role="admin")
    >>> oracle.decrypt(profile)
    {'email': 'aaa@bbccdd.ee', 'uid': '10', 'role': 'admin'}

    >>> oracle.decrypt(craft_profile_ct(oracle=oracle.encrypt, role="superuser", email="Z" * 29))["role"]
    'superuser'

    >>> craft_profile_ct(oracle=oracle.encrypt, role="Z" * 16)
    Traceback (most recent call last):
    ValueError: Role 'ZZZZZZZZZZZZZZZZ' must fit in a single block with its padding

    >>> craft_profile_ct(oracle=oracle.encrypt, role="ad&min")
    Traceback (most recent call last):
    ValueError: Role 'ad&min' can't contain & or =

    >>> craft_profile_ct(oracle=oracle.encrypt, email="foo@bar.com")
    Traceback (most recent call last):
    ValueError: Email 'foo@bar.com' must be 13 bytes long (mod 16) to push the role onto a block of its own
    """
    if strip_metacharacters(role) != role:
        raise ValueError(f"Role {role!r} can't contain & or =")
    if not 0 < len(role.encode()) < BLOCK_SIZE:
        raise ValueError(f"Role {role!r} must fit in a single block with its padding")
    if strip_metacharacters(email) != email:
        raise ValueError(f"Email {email!r} can't contain & or =")
    email_length = aligned_email_length()
    if len(email.encode()) % BLOCK_SIZE != email_length:
        raise ValueError(f"Email {email!r} must be {email_length} bytes long (mod {BLOCK_SIZE}) "
                         f"to push the role onto a block of its own")

    # Donor: "email=" and some filler make up the first block, the second is the role and valid padding
    filler = " " * (BLOCK_SIZE - len("email="))
    padded_role = pad_pkcs7(role.encode(), BLOCK_SIZE).decode()
    ct = oracle(filler + padded_role)
    block_role = list(chunkify(ct, BLOCK_SIZE))[1]

    # Acceptor: "user" and its padding make up the last block
    ct = oracle(email)

    # ECB blocks don't depend on each other, so just swap the last one out
    return b"".join(list(chunkify(ct, BLOCK_SIZE))[:-1]) + block_role


def main():
    oracle = ProfileOracle(verbose=True)
    profile = craft_profile_ct(oracle=oracle.encrypt, role="admin")
    role = oracle.decrypt(profile)["role"]
    print(f"Role: {role!r}")


if __name__ == "__main__":
    main()
