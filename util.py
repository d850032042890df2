import concurrent.futures
from dataclasses import dataclass
from enum import Enum
from secrets import choice, token_bytes, randbelow
from typing import Callable, Generator, Iterable, List, Optional, Protocol
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# AES-128
BLOCK_SIZE = 16


class PaddingError(Exception):
    pass


class FormatError(Exception):
    pass


def chunkify(b: bytes, chunk_size: int) -> Generator[bytes, None, None]:
    """
    Yield chunk_size sized chunks from b

    >>> list(chunkify(b"ABCD", 2))
    [b'AB', b'CD']

    >>> list(chunkify(b"ABCDE", 2))
    [b'AB', b'CD', b'E']
    """
    for i in range(0, len(b), chunk_size):
        yield b[i:i + chunk_size]


def fixed_xor(b1: bytes, b2: bytes) -> bytes:
    """
    Take two bytes arguments of equal length, return their XOR

    >>> fixed_xor(b"\\x0f\\xf0", b"\\xff\\xff")
    b'\\xf0\\x0f'

    >>> fixed_xor(b"AAAA", b"AAA")
    Traceback (most recent call last):
    ValueError: Arguments are of different length
    """
    if len(b1) != len(b2):
        raise ValueError("Arguments are of different length")
    return bytes(a ^ b for a, b in zip(b1, b2))


def pad_pkcs7(data: bytes, block_size: int) -> bytes:
    """
    Always adds at least one byte, so aligned input gets a whole block of padding

    >>> pad_pkcs7(b"YELLOW SUBMARINE", 20)
    b'YELLOW SUBMARINE\\x04\\x04\\x04\\x04'
    >>> pad_pkcs7(b"YELLOW SUBMARINE", 16)
    b'YELLOW SUBMARINE\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10\\x10'
    >>> pad_pkcs7(b"YELLOW SUBMARINE", 17)
    b'YELLOW SUBMARINE\\x01'
    >>> all(len(pad_pkcs7(bytes(n), 16)) % 16 == 0 and len(pad_pkcs7(bytes(n), 16)) > n for n in range(64))
    True

    >>> pad_pkcs7(b"AAAA", 256)
    Traceback (most recent call last):
    ValueError: block_size must be between 1 and 255, got 256
    """
    if not 0 < block_size < 256:
        raise ValueError(f"block_size must be between 1 and 255, got {block_size}")
    num_padding_bytes = block_size - len(data) % block_size
    return data + bytes([num_padding_bytes] * num_padding_bytes)


def unpad_pkcs7(data: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    """
    Strip PKCS#7 padding, refusing to guess when the padding doesn't check out

    >>> unpad_pkcs7(b"Hello, world!\\x03\\x03\\x03")
    b'Hello, world!'
    >>> unpad_pkcs7(pad_pkcs7(b"Beware of the hazmat", 100), block_size=100)
    b'Beware of the hazmat'
    >>> all(unpad_pkcs7(pad_pkcs7(bytes(n), 16)) == bytes(n) for n in range(64))
    True

    >>> unpad_pkcs7(b"Hello, world!\\x02")
    Traceback (most recent call last):
    util.PaddingError: Bad padding in b'Hello, world!\\x02'
    >>> unpad_pkcs7(b"AAAAAAAAAAAAAAA\\x00")
    Traceback (most recent call last):
    util.PaddingError: Bad padding in b'AAAAAAAAAAAAAAA\\x00'
    >>> unpad_pkcs7(b"AAAAAAAAAAAAAAA\\x11")
    Traceback (most recent call last):
    util.PaddingError: Bad padding in b'AAAAAAAAAAAAAAA\\x11'
    >>> unpad_pkcs7(b"\\x05\\x05")
    Traceback (most recent call last):
    util.PaddingError: Bad padding in b'\\x05\\x05'
    >>> unpad_pkcs7(b"")
    Traceback (most recent call last):
    util.PaddingError: Nothing to unpad
    """
    if not data:
        raise PaddingError("Nothing to unpad")
    num_padding_bytes = data[-1]
    if not 1 <= num_padding_bytes <= min(block_size, len(data)):
        raise PaddingError(f"Bad padding in {data!r}")
    if any(b != num_padding_bytes for b in data[-num_padding_bytes:]):
        raise PaddingError(f"Bad padding in {data!r}")
    return data[:-num_padding_bytes]


class BlockCipher(Protocol):
    """
    Encrypts and decrypts exactly one block under a key. Must be deterministic: the same key and block always
    give the same output. The modes below are built on nothing more than this.
    """
    block_size: int

    def encrypt_block(self, key: bytes, block: bytes) -> bytes:
        ...

    def decrypt_block(self, key: bytes, block: bytes) -> bytes:
        ...


class AES128BlockCipher:
    """
    Raw AES-128 on a single block. One block through the cryptography package's ECB mode is exactly the bare
    block cipher, with no chaining and no padding.

    FIPS-197 Appendix C.1:

    >>> aes = AES128BlockCipher()
    >>> key = bytes(range(16))
    >>> ct = aes.encrypt_block(key, bytes.fromhex("00112233445566778899aabbccddeeff"))
    >>> ct.hex()
    '69c4e0d86a7b0430d8cdb78070b4c55a'
    >>> aes.decrypt_block(key, ct).hex()
    '00112233445566778899aabbccddeeff'
    """
    block_size = BLOCK_SIZE

    def encrypt_block(self, key: bytes, block: bytes) -> bytes:
        encryptor = Cipher(algorithms.AES128(key), modes.ECB()).encryptor()
        return encryptor.update(block) + encryptor.finalize()

    def decrypt_block(self, key: bytes, block: bytes) -> bytes:
        decryptor = Cipher(algorithms.AES128(key), modes.ECB()).decryptor()
        return decryptor.update(block) + decryptor.finalize()


class XorBlockCipher:
    """
    A hopeless "block cipher" that XORs the block with the key. It is deterministic and invertible, which is all
    the modes need, so it's useful for poking at them without AES in the way.

    >>> XorBlockCipher().encrypt_block(b"K" * 16, b"A" * 16)
    b'\\n\\n\\n\\n\\n\\n\\n\\n\\n\\n\\n\\n\\n\\n\\n\\n'
    """
    block_size = BLOCK_SIZE

    def encrypt_block(self, key: bytes, block: bytes) -> bytes:
        return fixed_xor(block, key)

    def decrypt_block(self, key: bytes, block: bytes) -> bytes:
        return fixed_xor(block, key)


AES128 = AES128BlockCipher()


def check_format(data: bytes, key: bytes, block_size: int, iv: Optional[bytes] = None):
    """
    Raise FormatError if the key, IV (if given) or data don't fit the block size

    >>> check_format(b"A" * 32, key=b"YELLOW SUBMARINE", block_size=16)
    >>> check_format(b"A" * 16, key=b"too short", block_size=16)
    Traceback (most recent call last):
    util.FormatError: Key must be 16 bytes, got 9
    >>> check_format(b"A" * 16, key=b"YELLOW SUBMARINE", block_size=16, iv=b"too short")
    Traceback (most recent call last):
    util.FormatError: IV must be 16 bytes, got 9
    >>> check_format(b"too short", key=b"YELLOW SUBMARINE", block_size=16)
    Traceback (most recent call last):
    util.FormatError: Data length 9 is not a multiple of the block size 16
    """
    if len(key) != block_size:
        raise FormatError(f"Key must be {block_size} bytes, got {len(key)}")
    if iv is not None and len(iv) != block_size:
        raise FormatError(f"IV must be {block_size} bytes, got {len(iv)}")
    if len(data) % block_size:
        raise FormatError(f"Data length {len(data)} is not a multiple of the block size {block_size}")


def ecb_encrypt(plaintext: bytes, key: bytes, block_cipher: BlockCipher = AES128) -> bytes:
    """
    Encrypt block-aligned plaintext in ECB mode. Every block is encrypted on its own, so equal plaintext blocks
    come out as equal ciphertext blocks

    >>> ct = ecb_encrypt(b"A" * 32, key=b"YELLOW SUBMARINE")
    >>> ct[:16] == ct[16:]
    True
    >>> ecb_encrypt(b"A" * 32, key=b"K" * 16, block_cipher=XorBlockCipher()) == b"\\n" * 32
    True
    """
    check_format(plaintext, key, block_cipher.block_size)
    return b"".join(block_cipher.encrypt_block(key, chunk)
                    for chunk in chunkify(plaintext, block_cipher.block_size))


def ecb_decrypt(ciphertext: bytes, key: bytes, block_cipher: BlockCipher = AES128) -> bytes:
    """
    >>> key = b"YELLOW SUBMARINE"
    >>> ecb_decrypt(ecb_encrypt(b"Sixteen byte blk" * 3, key), key)
    b'Sixteen byte blkSixteen byte blkSixteen byte blk'

    >>> ecb_decrypt(b"too short", key=key)
    Traceback (most recent call last):
    util.FormatError: Data length 9 is not a multiple of the block size 16
    """
    check_format(ciphertext, key, block_cipher.block_size)
    return b"".join(block_cipher.decrypt_block(key, chunk)
                    for chunk in chunkify(ciphertext, block_cipher.block_size))


def cbc_encrypt(plaintext: bytes, key: bytes, iv: bytes, block_cipher: BlockCipher = AES128) -> bytes:
    """
    Encrypt block-aligned plaintext in CBC mode (the hard way). Each block is XORed with the previous ciphertext
    block (the IV for the first one) before it's encrypted, which means this can only ever go one block at a time

    >>> key = b"YELLOW SUBMARINE"
    >>> ct = cbc_encrypt(b"A" * 32, key=key, iv=bytes(16))
    >>> ct[:16] == ecb_encrypt(b"A" * 16, key=key)
    True
    >>> ct[:16] == ct[16:]
    False

    >>> cbc_encrypt(b"A" * 16, key=b"too short", iv=bytes(16))
    Traceback (most recent call last):
    util.FormatError: Key must be 16 bytes, got 9
    >>> cbc_encrypt(b"A" * 16, key=key, iv=b"too short")
    Traceback (most recent call last):
    util.FormatError: IV must be 16 bytes, got 9
    """
    check_format(plaintext, key, block_cipher.block_size, iv=iv)

    ciphertext: List[bytes] = []
    prev_block = iv
    for chunk in chunkify(plaintext, block_cipher.block_size):
        prev_block = block_cipher.encrypt_block(key, fixed_xor(chunk, prev_block))
        ciphertext.append(prev_block)

    return b"".join(ciphertext)


def cbc_decrypt(ciphertext: bytes, key: bytes, iv: bytes, block_cipher: BlockCipher = AES128,
                workers: Optional[int] = None) -> bytes:
    """
    Decrypt block-aligned ciphertext in CBC mode (the hard way)

    Each plaintext block only depends on its own ciphertext block and the one before it, so unlike encryption
    the blocks can be done in any order. Pass workers to spread them over a thread pool.

    >>> key = b"YELLOW SUBMARINE"
    >>> iv = token_bytes(16)
    >>> plaintext = pad_pkcs7(b"That's a lotta words, too bad I ain't reading em", 16)
    >>> cbc_decrypt(cbc_encrypt(plaintext, key=key, iv=iv), key=key, iv=iv) == plaintext
    True
    >>> cbc_decrypt(cbc_encrypt(plaintext, key=key, iv=iv), key=key, iv=iv, workers=4) == plaintext
    True

    >>> xor = XorBlockCipher()
    >>> ct = cbc_encrypt(plaintext, key=b"K" * 16, iv=iv, block_cipher=xor)
    >>> cbc_decrypt(ct, key=b"K" * 16, iv=iv, block_cipher=xor) == plaintext
    True

    >>> cbc_decrypt(b"too short", key=key, iv=bytes(16))
    Traceback (most recent call last):
    util.FormatError: Data length 9 is not a multiple of the block size 16
    """
    check_format(ciphertext, key, block_cipher.block_size, iv=iv)

    chunks = list(chunkify(ciphertext, block_cipher.block_size))

    def decrypt_chunk(prev_block: bytes, chunk: bytes) -> bytes:
        return fixed_xor(block_cipher.decrypt_block(key, chunk), prev_block)

    prev_blocks = [iv, *chunks[:-1]]
    if workers is None:
        plaintext = list(map(decrypt_chunk, prev_blocks, chunks))
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            plaintext = list(executor.map(decrypt_chunk, prev_blocks, chunks))

    return b"".join(plaintext)


def aes128_ecb_encrypt(plaintext: bytes, key: bytes) -> bytes:
    """
    Encrypt plaintext using AES-128 in ECB mode using the given key

    Automatically pads plaintext using PKCS#7

    >>> plaintext = b"Beware of hazardous materials"
    >>> key = b"YELLOW SUBMARINE"
    >>> aes128_ecb_decrypt(aes128_ecb_encrypt(plaintext, key), key) == plaintext
    True

    >>> aes128_ecb_encrypt(b"AAAA", key=b"too short")
    Traceback (most recent call last):
    util.FormatError: Key must be 16 bytes, got 9
    """
    return ecb_encrypt(pad_pkcs7(plaintext, BLOCK_SIZE), key=key)


def aes128_ecb_decrypt(ciphertext: bytes, key: bytes) -> bytes:
    """
    Decrypt ciphertext using AES-128 in ECB mode using the given key

    Automatically unpads plaintext using PKCS#7
    """
    return unpad_pkcs7(ecb_decrypt(ciphertext, key=key))


def aes128_cbc_encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    """
    Encrypt plaintext using AES-128 in CBC mode using the given key and IV

    Automatically pads plaintext using PKCS#7

    >>> key = b"YELLOW SUBMARINE"
    >>> iv = bytes([0] * 16)
    >>> plaintext = b"That's a lotta words, too bad I ain't reading em"
    >>> ciphertext = aes128_cbc_encrypt(plaintext, key=key, iv=iv)
    >>> len(ciphertext)
    64
    >>> aes128_cbc_decrypt(ciphertext, key=key, iv=iv) == plaintext
    True
    """
    return cbc_encrypt(pad_pkcs7(plaintext, BLOCK_SIZE), key=key, iv=iv)


def aes128_cbc_decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """
    Decrypt ciphertext using AES-128 in CBC mode using the given key and IV

    Automatically unpads plaintext using PKCS#7
    """
    return unpad_pkcs7(cbc_decrypt(ciphertext, key=key, iv=iv))


def count_repeated_blocks(ciphertext: bytes, block_size: int = BLOCK_SIZE) -> int:
    """
    Count how many block_size chunks of ciphertext are repeats of an earlier chunk. A trailing partial chunk is
    ignored.

    >>> count_repeated_blocks(b"A" * 16 * 4)
    3
    >>> count_repeated_blocks(b"A" * 16 + b"B" * 16 + b"A" * 16 + b"A" * 8)
    1
    >>> count_repeated_blocks(b"")
    0
    """
    seen = set()
    repeats = 0
    for chunk in chunkify(ciphertext, block_size):
        if len(chunk) < block_size:
            break
        if chunk in seen:
            repeats += 1
        else:
            seen.add(chunk)
    return repeats


def is_ecb(ciphertext: bytes, block_size: int = BLOCK_SIZE) -> bool:
    """
    Guess whether ciphertext came out of a block cipher in ECB mode, going by _any_ repeated block

    This is a heuristic. Short or non-repetitive plaintexts encrypted with ECB won't have repeated blocks and will
    be missed. It's reliable when the plaintext is known to repeat, e.g. because we chose it.

    >>> key = b"YELLOW SUBMARINE"
    >>> is_ecb(ecb_encrypt(b"A" * 32, key=key))
    True
    >>> is_ecb(cbc_encrypt(b"A" * 32, key=key, iv=token_bytes(16)))
    False
    >>> is_ecb(ecb_encrypt(b"Sixteen byte blk", key=key))
    False
    """
    return count_repeated_blocks(ciphertext, block_size) > 0


@dataclass
class EcbSuspect:
    ciphertext: bytes
    repeats: int

    def __repr__(self):
        return f"EcbSuspect(ciphertext={self.ciphertext[:8].hex()}..., repeats={self.repeats})"


def rank_ecb_candidates(ciphertexts: Iterable[bytes], block_size: int = BLOCK_SIZE) -> List[EcbSuspect]:
    """
    Score each ciphertext by its number of repeated blocks and return them most-repetitive (most likely ECB) first.
    Ties keep their input order.

    >>> ecb = bytes.fromhex("d880619740a8a19b7840a8a31c810a3d08649af70dc06f4fd5d2d69c744cd283e2dd052f6b641dbf9d11b0348542bb5708649af70dc06f4fd5d2d69c744cd2839475c9dfdbc1d46597949d9c7e82bf5a08649af70dc06f4fd5d2d69c744cd28397a93eab8d6aecd566489154789a6b0308649af70dc06f4fd5d2d69c744cd283d403180c98c8f6db1f2a3f9c4040deb0ab51b29933f2c123c58386b06fba186a")
    >>> ciphertexts = [token_bytes(160), ecb, token_bytes(160)]
    >>> ranked = rank_ecb_candidates(ciphertexts)
    >>> ranked[0]
    EcbSuspect(ciphertext=d880619740a8a19b..., repeats=3)
    >>> [suspect.repeats for suspect in ranked[1:]]
    [0, 0]
    """
    suspects = [EcbSuspect(ciphertext=ct, repeats=count_repeated_blocks(ct, block_size)) for ct in ciphertexts]
    return sorted(suspects, key=lambda x: x.repeats, reverse=True)


def identify_ciphertexts_encrypted_with_ecb(ciphertexts: List[bytes], block_size: int) -> List[bytes]:
    """
    Given a list of ciphertexts, return the ciphertexts which were suspected to have been encrypted using
    a block cipher in ECB mode.

    >>> key = b"YELLOW SUBMARINE"
    >>> ecb = ecb_encrypt(b"A" * 64, key=key)
    >>> sus = identify_ciphertexts_encrypted_with_ecb([token_bytes(64), ecb, token_bytes(64)], 16)
    >>> sus == [ecb]
    True
    """
    return [ciphertext for ciphertext in ciphertexts if is_ecb(ciphertext, block_size)]


class BlockCipherMode(Enum):
    ECB = 0
    CBC = 1


class AES128EcbCbcOracle:
    """
    An oracle that randomly picks ECB or CBC mode (50/50 split) and then encrypts data using AES-128 in that mode
    using a random key (and random IV in the case of CBC mode), bookending the plaintext with 5-10 random bytes
    """
    mode: BlockCipherMode
    verbose: bool

    def __init__(self, verbose: bool = False):
        self.mode = choice((BlockCipherMode.ECB, BlockCipherMode.CBC))
        self.verbose = verbose

    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Bookend plaintext with 5-10 random bytes, then encrypt it under a fresh random key (and a random IV in the
        case of CBC) using AES-128 in self.mode. Return the ciphertext.

        >>> oracle = AES128EcbCbcOracle()
        >>> len(oracle.encrypt(b"")) in (16, 32)
        True
        """
        key = token_bytes(BLOCK_SIZE)

        plaintext = token_bytes(randbelow(6) + 5) + plaintext + token_bytes(randbelow(6) + 5)

        if self.mode is BlockCipherMode.ECB:
            ct = aes128_ecb_encrypt(plaintext, key=key)
        else:
            ct = aes128_cbc_encrypt(plaintext, key=key, iv=token_bytes(BLOCK_SIZE))
        if self.verbose:
            print(f"Encrypt ({self.mode.name}): {plaintext!r} --> {ct[:8]!r}...")
        return ct


def determine_oracle_ecb_vs_cbc(oracle: Callable[[bytes], bytes]) -> BlockCipherMode:
    """
    Determines if the callable oracle is encrypting using ECB or CBC

    Feeds the oracle enough identical bytes that at least two whole blocks of them line up, even if the oracle
    prepends up to a block's worth of junk

    >>> for _ in range(20):
    ...     oracle = AES128EcbCbcOracle()
    ...     assert determine_oracle_ecb_vs_cbc(oracle.encrypt) is oracle.mode
    """
    plaintext = b"A" * BLOCK_SIZE * 4

    if is_ecb(oracle(plaintext), block_size=BLOCK_SIZE):
        return BlockCipherMode.ECB
    return BlockCipherMode.CBC
