from riakcheck.main import main

main()
