#!/usr/bin/env python3
from util import pad_pkcs7, unpad_pkcs7, PaddingError

"""
Implement PKCS#7 padding

Pad any block to a specific block length by appending the number of bytes of padding to the end of the block.
"YELLOW SUBMARINE" padded to 20 bytes is "YELLOW SUBMARINE\x04\x04\x04\x04".
"""

"""
https://www.ibm.com/docs/en/zos/2.4.0?topic=rules-pkcs-padding-method says:

    Padding bytes are always added to the clear text before it is encrypted.
    Each padding byte has a value equal to the total number of padding bytes that are added.
    The total number of padding bytes is at least one.

Unpadding holds the data to the same rules. A trailing byte of zero, a trailing byte bigger than the block size,
or trailing bytes that don't all agree are rejected with a PaddingError rather than being trusted.
"""


def main():
    plaintext = b"YELLOW SUBMARINE"
    padded = pad_pkcs7(plaintext, 20)
    print(padded)
    print(unpad_pkcs7(padded, block_size=20))

    for bad in (b"ICE ICE BABY\x04\x04\x04\x04", b"ICE ICE BABY\x05\x05\x05\x05", b"ICE ICE BABY\x01\x02\x03\x04"):
        try:
            print(unpad_pkcs7(bad))
        except PaddingError as e:
            print(e)


if __name__ == "__main__":
    main()
