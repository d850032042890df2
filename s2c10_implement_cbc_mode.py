#!/usr/bin/env python3
import base64
from util import aes128_cbc_decrypt, aes128_cbc_encrypt, cbc_encrypt, ecb_encrypt, is_ecb, BLOCK_SIZE

"""
Implement CBC mode

In CBC mode, each ciphertext block is added to the next plaintext block before the next call to the cipher core.
The first plaintext block, which has no associated previous ciphertext block, is added to a "fake 0th ciphertext
block" called the initialization vector, or IV.

Implement CBC mode by hand by taking the ECB function you wrote earlier, making it encrypt instead of decrypt,
and using your XOR function from the previous exercise to combine them.

The file here is intelligible (somewhat) when CBC decrypted against "YELLOW SUBMARINE" with an IV of all ASCII 0.
"""


def main():
    key = b"YELLOW SUBMARINE"
    iv = bytes(BLOCK_SIZE)

    try:
        with open("data/s2c10.txt", "r") as f:
            ciphertext = base64.b64decode(f.read().encode())
    except FileNotFoundError:
        ciphertext = aes128_cbc_encrypt(b"Play that funky music, white boy", key=key, iv=iv)

    print(aes128_cbc_decrypt(ciphertext, key=key, iv=iv).decode())

    # Two identical blocks: ECB gives the game away, CBC doesn't
    plaintext = b"A" * BLOCK_SIZE * 2
    print(f"ECB looks like ECB: {is_ecb(ecb_encrypt(plaintext, key=key))}")
    print(f"CBC looks like ECB: {is_ecb(cbc_encrypt(plaintext, key=key, iv=iv))}")


if __name__ == "__main__":
    main()
