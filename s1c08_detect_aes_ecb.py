#!/usr/bin/env python3
from util import rank_ecb_candidates, BLOCK_SIZE

"""
Detect AES in ECB mode

In this file are a bunch of hex-encoded ciphertexts. One of them has been encrypted with ECB. Detect it.

ECB is stateless and deterministic; the same 16 byte plaintext block will always produce the same 16 byte
ciphertext. So rank the ciphertexts by how many of their blocks are repeats, and the winner is our suspect.
"""


def main():
    with open("data/s1c08.txt", "r") as f:
        ciphertexts = [bytes.fromhex(line.rstrip()) for line in f if line.strip()]

    ranked = rank_ecb_candidates(ciphertexts, block_size=BLOCK_SIZE)

    print("Most likely ECB ciphertexts:")
    for suspect in ranked[:3]:
        print(f"{suspect.repeats} repeated blocks: {suspect.ciphertext.hex()}")


if __name__ == "__main__":
    main()
