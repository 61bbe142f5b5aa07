#!/usr/bin/env python3
"""
Simple test to verify that the package structure and imports work correctly.
"""

import sys
import os

# Add the parent directory to the path so we can import the package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))


def test_imports():
    """Test that all modules can be imported correctly."""
    # Import the main package
    import xymodem

    # Import individual modules
    from xymodem import checksum
    from xymodem import config
    from xymodem import exceptions
    from xymodem import frame
    from xymodem import header
    from xymodem import modem
    from xymodem import protocols
    from xymodem import timer

    # Import specific classes
    from xymodem import XModem
    from xymodem import XModem1K
    from xymodem import YModem
    from xymodem import ModemException

    assert issubclass(xymodem.PeerCancelledException, ModemException)
    assert xymodem.__version__


if __name__ == "__main__":
    test_imports()
    print("All imports successful!")
