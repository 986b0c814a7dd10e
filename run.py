# run.py
# Description: Entry point for the field_notes application when run from a source checkout.
#
# Imports
#
# Local Imports
from field_notes.app import main
#
#######################################################################################################################
#
# Functions:

if __name__ == "__main__":
    main()

#
# End of run.py
#######################################################################################################################
