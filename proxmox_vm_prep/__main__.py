import sys

from proxmox_vm_prep.cli import main

if __name__ == "__main__":
    sys.exit(main())
