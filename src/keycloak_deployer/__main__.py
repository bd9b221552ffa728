import sys

from keycloak_deployer.cli import main

if __name__ == "__main__":
    sys.exit(main())
