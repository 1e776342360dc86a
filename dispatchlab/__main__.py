"""Entry point for running dispatchlab as a module.

This file allows dispatchlab to be run with: python -m dispatchlab
"""

from dispatchlab.app import main

if __name__ == "__main__":
    main()
