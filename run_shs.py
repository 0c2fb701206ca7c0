"""
run_shs.py - CLI entry point for the SHS workflow
=================================================

    python run_shs.py initial.xyz [options]

See ``python run_shs.py --help`` for the options and the config.json keys.
"""

from shspy.interface import main


if __name__ == "__main__":
    main()
