#!/usr/bin/env python3
from util import AES128EcbCbcOracle, determine_oracle_ecb_vs_cbc

"""
An ECB/CBC detection oracle

Write a function that encrypts data under an unknown key, generating a random AES key each time it's called.
Have it append 5-10 bytes (count chosen randomly) before and after the plaintext, and encrypt under ECB half the
time and under CBC the other half (using random IVs).

Detect the block cipher mode the function is using each time.
"""


def main():
    rounds = 100
    correct = 0
    for _ in range(rounds):
        oracle = AES128EcbCbcOracle()
        guessed_mode = determine_oracle_ecb_vs_cbc(oracle.encrypt)
        if guessed_mode is oracle.mode:
            correct += 1
        else:
            print(f"Guessed {guessed_mode.name}, was {oracle.mode.name}")
    print(f"Detected the mode correctly {correct}/{rounds} times")


if __name__ == "__main__":
    main()
