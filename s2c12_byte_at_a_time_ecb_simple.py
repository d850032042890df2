#!/usr/bin/env python3
import base64
import concurrent.futures
from collections import deque, namedtuple
from math import ceil
from dataclasses import dataclass, field
from secrets import token_bytes
from typing import Callable, Deque, List, Optional
from util import AES128, BlockCipher, XorBlockCipher, chunkify, ecb_encrypt, is_ecb, pad_pkcs7

"""
Byte-at-a-time ECB decryption (Simple)

Build an oracle that encrypts buffers under ECB mode using a consistent but unknown key, after appending an unknown
string to them. What you have now is a function that produces:

AES-128-ECB(your-string || unknown-string, random-key)

It turns out: you can decrypt "unknown-string" with repeated calls to the oracle function.

    Feed identical bytes to the function 1 at a time to discover the block size and how long the unknown string is.
    Detect that the function is using ECB.
    Craft an input block that is exactly 1 byte short. The oracle will put the first unknown byte in the last slot.
    Try every possible last byte after the same 15 bytes and see which one encrypts to the same block.
    Repeat for the next byte.
"""

BLOCK_SIZE = 16
# 255 bytes of PKCS#7 padding is the most anyone can add
MAX_BLOCK_SIZE = 255
FILLER = b"A"

FLAG = base64.b64decode(
    "Um9sbGluJyBpbiBteSA1LjAKV2l0aCBteSByYWctdG9wIGRvd24gc28gbXkgaGFpciBjYW4gYmxvdwpUaGUgZ2lybGllcyBvbiBzdGFuZGJ5IHdh"
    "dmluZyBqdXN0IHRvIHNheSBoaQpEaWQgeW91IHN0b3A/IE5vLCBJIGp1c3QgZHJvdmUgYnkK")


@dataclass(frozen=True)
class EcbAppendAndEncryptOracle:
    """
    Holds a key and a suffix, both fixed for the life of the oracle, and will encrypt anything you like as long as
    the suffix can tag along. The key defaults to a random one.

    >>> oracle = EcbAppendAndEncryptOracle(suffix=b"secret", key=b"YELLOW SUBMARINE")
    >>> len(oracle.encrypt(b""))
    16
    >>> len(oracle.encrypt(b"A" * 10))
    32
    >>> oracle.encrypt(b"A" * 32)[:16] == oracle.encrypt(b"A" * 16)[:16]
    True
    """
    suffix: bytes
    key: bytes = field(default_factory=lambda: token_bytes(BLOCK_SIZE), repr=False)
    block_cipher: BlockCipher = AES128
    verbose: bool = False

    def encrypt(self, prefix: bytes) -> bytes:
        pt = pad_pkcs7(prefix + self.suffix, self.block_cipher.block_size)
        ct = ecb_encrypt(pt, key=self.key, block_cipher=self.block_cipher)
        if self.verbose:
            print(f"Encrypt: {prefix!r} --> {ct[:8]!r}...")
        return ct


Calibration = namedtuple("Calibration", ["block_size", "suffix_length"])


def discover_block_size_and_suffix_len_from_appending_oracle(oracle: Callable[[bytes], bytes]) -> Calibration:
    """
    Grow the prefix a byte at a time until the ciphertext grows. It grows by one block, and it does so exactly
    when prefix + suffix fills the previous ciphertext length, so the suffix is what's left over.

    >>> oracle = EcbAppendAndEncryptOracle(suffix=b"A" * 8)
    >>> discover_block_size_and_suffix_len_from_appending_oracle(oracle.encrypt)
    Calibration(block_size=16, suffix_length=8)

    >>> oracle = EcbAppendAndEncryptOracle(suffix=b"A" * 24)
    >>> discover_block_size_and_suffix_len_from_appending_oracle(oracle.encrypt)
    Calibration(block_size=16, suffix_length=24)

    >>> oracle = EcbAppendAndEncryptOracle(suffix=b"A" * 32)
    >>> discover_block_size_and_suffix_len_from_appending_oracle(oracle.encrypt)
    Calibration(block_size=16, suffix_length=32)

    >>> discover_block_size_and_suffix_len_from_appending_oracle(lambda prefix: bytes(16))
    Traceback (most recent call last):
    ValueError: Ciphertext never grew, oracle doesn't look like it's padding to a block size
    """
    base_len_ct = len(oracle(b""))
    for i in range(1, MAX_BLOCK_SIZE + 1):
        new_len = len(oracle(FILLER * i))
        if new_len != base_len_ct:
            block_size = new_len - base_len_ct
            return Calibration(block_size=block_size, suffix_length=new_len - block_size - i)
    raise ValueError("Ciphertext never grew, oracle doesn't look like it's padding to a block size")


def find_matching_byte(oracle: Callable[[bytes], bytes], window: bytes, target: bytes,
                       workers: Optional[int] = None) -> Optional[int]:
    """
    Return the smallest byte value b for which window + b encrypts to target as the first block, or None

    The 256 guesses don't depend on each other, so they can be farmed out to a thread pool. Either way the
    smallest match wins.

    >>> oracle = EcbAppendAndEncryptOracle(suffix=b"", key=b"YELLOW SUBMARINE")
    >>> target = oracle.encrypt(b"A" * 15 + b"Z")[:16]
    >>> chr(find_matching_byte(oracle.encrypt, b"A" * 15, target))
    'Z'
    >>> chr(find_matching_byte(oracle.encrypt, b"A" * 15, target, workers=8))
    'Z'
    >>> find_matching_byte(oracle.encrypt, b"B" * 15, target) is None
    True
    """
    block_size = len(target)

    def is_match(candidate: int) -> bool:
        ct = oracle(window + bytes([candidate]))
        return ct[:block_size] == target

    candidates = range(256)
    if workers is None:
        return next((b for b in candidates if is_match(b)), None)

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        matches = list(executor.map(is_match, candidates))
    return next((b for b, matched in zip(candidates, matches) if matched), None)


def leak_suffix_from_appending_ecb_oracle(oracle: Callable[[bytes], bytes], workers: Optional[int] = None,
                                          verbose: bool = False) -> bytes:
    """
    Recover the suffix an ECB oracle appends to our input, without the key

    If no byte value matches at some position we've lost alignment (or we're looking at padding) and the bytes
    recovered so far are returned as-is.

    >>> oracle = EcbAppendAndEncryptOracle(suffix=FLAG, key=b"YELLOW SUBMARINE")
    >>> res = leak_suffix_from_appending_ecb_oracle(oracle.encrypt)
    >>> res == FLAG
    True
    >>> res.decode().splitlines()[0]
    "Rollin' in my 5.0"

    >>> oracle = EcbAppendAndEncryptOracle(suffix=b"Hack the planet!" * 2 + b"!", block_cipher=XorBlockCipher())
    >>> leak_suffix_from_appending_ecb_oracle(oracle.encrypt, workers=4)
    b'Hack the planet!Hack the planet!!'

    >>> oracle = EcbAppendAndEncryptOracle(suffix=b"")
    >>> leak_suffix_from_appending_ecb_oracle(oracle.encrypt)
    b''

    An oracle that scrambles most full-block inputs spoils the lookup after the first byte, and we keep what we got

    >>> oracle = EcbAppendAndEncryptOracle(suffix=FLAG)
    >>> leak_suffix_from_appending_ecb_oracle(lambda p: oracle.encrypt(p if p[:15] == b"A" * 15 else p[::-1]))
    b'R'

    >>> from util import cbc_encrypt
    >>> leak_suffix_from_appending_ecb_oracle(lambda p: cbc_encrypt(pad_pkcs7(p + FLAG, 16), b"K" * 16, bytes(16)))
    Traceback (most recent call last):
    ValueError: Oracle is not operating in ECB mode
    """
    # Discover block size of oracle and the length of the suffix
    block_size, suffix_len = discover_block_size_and_suffix_len_from_appending_oracle(oracle)
    if verbose:
        print(f"Block size is {block_size}, suffix is {suffix_len} bytes")

    # Prove it's ECB, bail if it's not
    if not is_ecb(oracle(bytes(block_size * 2))[:block_size * 2], block_size):
        raise ValueError("Oracle is not operating in ECB mode")

    # The last block_size - 1 bytes of (filler || suffix) before the byte we're after
    window: Deque[int] = deque(FILLER * (block_size - 1), maxlen=block_size - 1)
    suffix: List[int] = []

    for block_index in range(ceil(suffix_len / block_size)):
        for position in range(1, block_size + 1):
            if len(suffix) == suffix_len:
                break

            # Shove the next unknown byte into the last slot of block block_index
            ct = oracle(FILLER * (block_size - position))
            target = list(chunkify(ct, block_size))[block_index]

            b = find_matching_byte(oracle, bytes(window), target, workers=workers)
            if b is None:
                if verbose:
                    print(f"No byte matched at offset {len(suffix)}, stopping")
                return bytes(suffix)

            suffix.append(b)
            window.append(b)
            if verbose:
                print(f"Recovered so far: {bytes(suffix)!r}")

    return bytes(suffix)


def main():
    oracle = EcbAppendAndEncryptOracle(suffix=FLAG)
    res = leak_suffix_from_appending_ecb_oracle(oracle.encrypt)
    print(res.decode())


if __name__ == "__main__":
    main()
