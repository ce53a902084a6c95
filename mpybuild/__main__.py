from mpybuild.main import main

main()
