"""
repositories/ - Data Access Layer
==================================
The copay program aggregate spans seven tables. `program_children` holds
one accessor per child table; `program_repo` composes them into the
aggregate repository that reads and writes whole programs.
"""
