from cipherdir.codec import derive_key


def pytest_configure():
    # Loads the OpenSSL bindings before any test swaps in the fake filesystem.
    derive_key('warm-up')
